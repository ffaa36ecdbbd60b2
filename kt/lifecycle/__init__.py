"""Knowledge lifecycle: staleness -> clustering -> compaction, plus digests."""

from kt.lifecycle.clustering import detect_clusters, plan_compaction
from kt.lifecycle.compaction import compact, compact_cluster
from kt.lifecycle.digest import generate_digest
from kt.lifecycle.staleness import detect_stale
from kt.lifecycle.summarize import (
    ModelSummarizer,
    NullSummarizer,
    build_compaction_prompt,
    build_digest_prompt,
    build_summarizer,
)

__all__ = [
    "detect_stale",
    "detect_clusters",
    "plan_compaction",
    "compact_cluster",
    "compact",
    "generate_digest",
    "ModelSummarizer",
    "NullSummarizer",
    "build_summarizer",
    "build_compaction_prompt",
    "build_digest_prompt",
]
