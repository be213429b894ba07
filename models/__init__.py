from .article import ArticleRecord, ExtractionAttempt, ExtractionResult, LinkRecord, SaveResult
from .request import ScrapeRequest

__all__ = [
    'ArticleRecord',
    'ExtractionAttempt',
    'ExtractionResult',
    'LinkRecord',
    'SaveResult',
    'ScrapeRequest',
]
