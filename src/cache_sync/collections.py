"""Collection routing: pipeline mode, test collections and key prefix per collection."""

from collections.abc import Iterable

from cache_sync.schemas.results import PipelineMode
from config.config import (
    DEFAULT_ACTIVITY_COLLECTIONS,
    DEFAULT_PROFILE_COLLECTIONS,
    DEFAULT_TEST_COLLECTIONS,
    CacheSyncConfig,
)


class CollectionRouter:
    """
    Decides how events from a collection are processed.

    Profile collections (identity / questionnaire data) run the profile
    pipeline; every other collection runs the activity pipeline. Test
    collections are served from mock data and always write prefixed keys.
    """

    def __init__(
        self,
        activity_collections: Iterable[str] = DEFAULT_ACTIVITY_COLLECTIONS,
        profile_collections: Iterable[str] = DEFAULT_PROFILE_COLLECTIONS,
        test_collections: Iterable[str] = DEFAULT_TEST_COLLECTIONS,
        test_mode: bool = False,
        test_key_prefix: str = "TEST_",
    ):
        self.activity_collections = frozenset(activity_collections)
        self.profile_collections = frozenset(profile_collections)
        self.test_collections = frozenset(test_collections)
        self.test_mode = test_mode
        self.test_key_prefix = test_key_prefix

    @classmethod
    def from_config(cls, config: CacheSyncConfig) -> "CollectionRouter":
        return cls(
            activity_collections=config.collections.activity,
            profile_collections=config.collections.profile,
            test_collections=config.collections.test,
            test_mode=config.test_mode,
            test_key_prefix=config.test_key_prefix,
        )

    def mode_for(self, collection_name: str) -> PipelineMode:
        if collection_name in self.profile_collections:
            return PipelineMode.PROFILE
        return PipelineMode.ACTIVITY

    def is_test_collection(self, collection_name: str) -> bool:
        return collection_name in self.test_collections

    def key_prefix(self, collection_name: str) -> str:
        if self.test_mode or self.is_test_collection(collection_name):
            return self.test_key_prefix
        return ""


__all__ = ["CollectionRouter"]
