#!/usr/bin/env python3
"""
Story synthesis for verified clusters.

Consumes clusters in `analyzing`, calls the text-generation service (and
optionally the image service), stores the result and completes the cluster.
"""

import logging
from typing import Any, Callable, Dict, Optional

from .cache import ResponseCache
from .database import Repository
from .exceptions import ClusterNotFoundError, SynthesisError
from .models import ClusterStatus
from .time_utils import Clock, utc_now

logger = logging.getLogger(__name__)


class StorySynthesizer:
    """Generates the unified story for a cluster that passed verification."""

    def __init__(self,
                 repository: Repository,
                 client_factory: Callable[[], Any],
                 enable_images: bool = False,
                 cache: Optional[ResponseCache] = None,
                 clock: Clock = utc_now):
        """
        Args:
            repository: Source of truth for clusters and articles
            client_factory: Returns an OpenAIClient; called lazily so a missing
                API key only fails synthesis tasks
            enable_images: Also request a hero image
            cache: Response cache to invalidate after cluster writes
            clock: Returns the current aware datetime
        """
        self.repository = repository
        self.client_factory = client_factory
        self.enable_images = enable_images
        self.cache = cache
        self._clock = clock

    def synthesize(self, cluster_id: str) -> Dict[str, Any]:
        """
        Synthesize one cluster.

        Returns:
            Stored synthesis, or a skip marker when the cluster is not analyzing

        Raises:
            ClusterNotFoundError: Unknown cluster id
            SynthesisError: Text or image generation failed
        """
        cluster = self.repository.get_cluster(cluster_id)
        if cluster is None:
            raise ClusterNotFoundError(cluster_id)

        if cluster.status == ClusterStatus.COMPLETE and cluster.synthesis:
            return {'cluster_id': cluster_id, 'skipped': True, **cluster.synthesis}
        if cluster.status != ClusterStatus.ANALYZING:
            logger.warning(f"Cluster {cluster_id} is {cluster.status}; skipping synthesis")
            return {'cluster_id': cluster_id, 'skipped': True, 'status': cluster.status}

        articles = self.repository.get_articles(cluster.article_ids + cluster.matched_article_ids)
        source_names = {}
        for source_id in {a.source_id for a in articles}:
            source = self.repository.get_source(source_id)
            source_names[source_id] = source.name if source else source_id

        client = self.client_factory()
        try:
            story = client.synthesize_story(cluster.topic, articles, source_names)
        except Exception as e:
            raise SynthesisError(cluster_id, 'text', e) from e

        image_url = None
        if self.enable_images:
            try:
                image_url = client.generate_image(f"News illustration, no text: {story['title']}")
            except Exception as e:
                raise SynthesisError(cluster_id, 'image', e) from e

        cluster.synthesis = {
            'title': story['title'],
            'body': story['body'],
            'confidence': story['confidence'],
            'image_url': image_url,
            'article_ids': [a.id for a in articles],
            'generated_at': self._clock().isoformat()
        }
        cluster.status = ClusterStatus.COMPLETE
        if not self.repository.save_cluster(cluster, expected_status=ClusterStatus.ANALYZING):
            logger.warning(f"Cluster {cluster_id} changed during synthesis; result discarded")
            return {'cluster_id': cluster_id, 'skipped': True, 'status': 'conflict'}

        if self.cache is not None:
            self.cache.invalidate_prefix('clusters:')
        logger.info(f"Synthesized cluster {cluster_id}: {story['title'][:60]}")
        return {'cluster_id': cluster_id, **cluster.synthesis}
