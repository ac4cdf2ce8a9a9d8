"""Categorization run orchestration"""
