"""
Feed package: data model, stores and the ranking pipeline stages.

Import from the submodules directly, e.g.
``from feed.pipeline import FeedRankingPipeline``.
"""
