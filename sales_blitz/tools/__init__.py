"""External collaborators: LLM client, AI oracle, upstream record source"""
