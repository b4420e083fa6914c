#!/usr/bin/env python3
"""
Core data models for the cross-reference pipeline.

Contains all data structures used throughout the application.
"""

from .source import NewsSource, SOURCE_TIERS
from .article import RawArticle, ArticleStatus, make_article_id
from .cluster import StoryCluster, ClusterStatus, CrossReferenceResult, Recommendation
from .task import (
    Task, TaskType, TaskStatus, TaskPayload, build_payload,
    FetchPayload, VerifyPayload, SynthesizePayload, DeliverPayload,
)

__all__ = [
    'NewsSource', 'SOURCE_TIERS',
    'RawArticle', 'ArticleStatus', 'make_article_id',
    'StoryCluster', 'ClusterStatus', 'CrossReferenceResult', 'Recommendation',
    'Task', 'TaskType', 'TaskStatus', 'TaskPayload', 'build_payload',
    'FetchPayload', 'VerifyPayload', 'SynthesizePayload', 'DeliverPayload',
]
