"""
ETF DataService
ETF market-data ingestion, TTL cache and AI analysis micro-service

Layers:
  - Acquisition Layer : Polygon.io client with rate-limit backoff
  - Cache Layer       : TTL repositories (quotes / historical / top picks / run log)
  - Processing Layer  : normalisation and ranking
  - Analysis Layer    : technical indicators feeding AI scoring
"""

__version__ = "1.0.0"
