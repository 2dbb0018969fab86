"""
Legal Directory Extractor - core library

Extraction, normalization and enrichment of lawyer profile records from
legal-directory listing pages, embedded JSON, JSON-LD, API payloads and
profile pages.
"""

from .schemas import ExtractionStrategy, LawyerRecord, RunStats

__all__ = ['ExtractionStrategy', 'LawyerRecord', 'RunStats']
