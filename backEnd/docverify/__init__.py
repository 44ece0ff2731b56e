"""
Document understanding and verification engine for loan underwriting.

Classifies OCR'd financial documents, extracts canonical structured data,
verifies it within and across documents, resolves what it safely can and
queues the rest for human review.
"""

__version__ = "0.1.0"
