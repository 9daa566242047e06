"""
Moodify Recs - Mood-based Playlist Generator
============================================

A recommendation engine that turns a mood label or a free-text vibe
into a short, scored playlist, personalized when the listener signs in.

Modules:
    - config: Configuration and constants
    - errors: Exception hierarchy
    - utils: TTL cache and small helpers
    - concurrency: Deadline, retry policy and worker pool
    - spotify_client: Spotify API wrapper
    - tags: MusicBrainz tag service
    - features: Track model and feature enrichment
    - vibe: Prompt signals and mood targets
    - taste: Listener taste profile and personalization seeds
    - queries: Search query building
    - language: Language classifiers and filter
    - candidates: Candidate track generation and combining
    - scoring: Scoring engine
    - explainer: Match reasons and comfort messages
    - recommender: Main recommendation orchestrator
    - api: HTTP API
    - cli: Command-line interface
"""

__version__ = "1.0.0"
__author__ = "Moodify Team"
