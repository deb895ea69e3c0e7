"""Tests for CategoryIndex."""

from bucketstore.buckets.ops import BucketOps


class TestCategoryIndex:
    def test_names_are_normalized_and_deduplicated(self, ops: BucketOps) -> None:
        names = ops.set_categories(1, ["science fiction", "Science_fiction", " novels ", ""])
        assert names == ["Science_fiction", "Novels"]

    def test_replaces_previous_set(self, ops: BucketOps) -> None:
        ops.set_categories(1, ["Novels", "Classics"])
        ops.set_categories(1, ["Poetry"])
        assert ops.categories.categories_for(1) == ["Poetry"]

    def test_pages_are_independent(self, ops: BucketOps) -> None:
        ops.set_categories(1, ["Novels"])
        ops.set_categories(2, ["Poetry"])
        ops.set_categories(1, [])

        assert ops.categories.categories_for(1) == []
        assert ops.categories.categories_for(2) == ["Poetry"]

    def test_sorted_read_back(self, ops: BucketOps) -> None:
        ops.set_categories(1, ["Zines", "Atlases"])
        assert ops.categories.categories_for(1) == ["Atlases", "Zines"]
