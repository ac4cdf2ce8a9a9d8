"""Normalization, deduplication, aggregation and classification pipeline"""
