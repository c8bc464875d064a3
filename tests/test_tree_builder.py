"""Tests for single tree growth: partitioning, stopping rules and split search."""

import numpy as np
import pytest

from fprerf.models.forest_components.candidate_sampler import (
    AxisAlignedSampler,
    CandidateSampler,
    SparseProjectionSampler,
)
from fprerf.models.forest_components.data_transforms import entropy_impurity, gini_impurity
from fprerf.models.forest_components.node_subsampler import StratifiedNodeSubsampler
from fprerf.models.forest_components.split_functions import AxisAlignedSplit, SplitKind
from fprerf.models.forest_components.tree_builder import TreeBuilder


class FixedPoolSampler(CandidateSampler):
    """Offers the same candidates, in the same order, at every node."""

    def __init__(self, candidates):
        super().__init__(n_features=max(f for c in candidates for f in c.features) + 1, mtry=len(candidates))
        self.candidates = candidates

    def sample(self, rng):
        return list(self.candidates)


def grow(X, y, sampler=None, rows=None, seed=0, **kwargs):
    sampler = sampler if sampler is not None else AxisAlignedSampler(X.shape[1], X.shape[1])
    rows = rows if rows is not None else np.arange(X.shape[0])
    builder = TreeBuilder(sampler, n_classes=int(y.max()) + 1, keep_samples=True, **kwargs)
    return builder.build_tree(X, y, rows, np.random.default_rng(seed))


def test_impurity_functions():
    counts = np.array([[5, 5], [10, 0], [0, 0]])
    assert np.allclose(gini_impurity(counts), [0.5, 0.0, 0.0])
    assert np.allclose(entropy_impurity(counts), [1.0, 0.0, 0.0])


def test_separable_data_gives_a_single_split():
    X = np.array([[0.0], [1.0], [2.0], [10.0], [11.0], [12.0]])
    y = np.array([0, 0, 0, 1, 1, 1])
    tree = grow(X, y)

    assert len(tree) == 3
    root = tree.root
    assert root.kind == SplitKind.AXIS
    assert 2.0 <= root.threshold < 10.0
    assert tree[root.left].class_counts.tolist() == [3, 0]
    assert tree[root.right].class_counts.tolist() == [0, 3]
    assert np.array_equal(tree.predict(X), y)


def test_children_have_larger_ids_than_parents(continuous_data):
    X, y, _, _ = continuous_data
    tree = grow(X, y, sampler=SparseProjectionSampler(X.shape[1], 3, mtry_mult=2.0))
    for node in tree:
        if not node.is_leaf:
            assert node.left > node.node_id
            assert node.right > node.node_id
    parents = tree.parents()
    assert parents[0] == -1
    assert np.all(parents[1:] >= 0)


@pytest.mark.parametrize("bootstrap_seed", [0, 1, 2])
def test_children_partition_their_parent(continuous_data, bootstrap_seed):
    X, y, _, _ = continuous_data
    rows = np.random.default_rng(bootstrap_seed).integers(0, X.shape[0], size=X.shape[0])
    tree = grow(X, y, sampler=SparseProjectionSampler(X.shape[1], 2), rows=rows, seed=bootstrap_seed)

    assert tree.root.n_samples == rows.shape[0]
    for node in tree:
        if node.is_leaf:
            continue
        left, right = tree[node.left], tree[node.right]
        assert left.n_samples > 0 and right.n_samples > 0
        assert left.n_samples + right.n_samples == node.n_samples
        combined = np.sort(np.concatenate([left.sample_positions, right.sample_positions]))
        assert np.array_equal(combined, np.sort(node.sample_positions))
        assert np.array_equal(left.class_counts + right.class_counts, node.class_counts)


@pytest.mark.parametrize("max_depth, min_parent", [(None, 1), (4, 1), (6, 5), (2, 20)])
def test_leaves_follow_stopping_rules(continuous_data, max_depth, min_parent):
    X, y, _, _ = continuous_data
    tree = grow(X, y, rows=np.random.default_rng(3).integers(0, X.shape[0], size=X.shape[0]),
                max_depth=max_depth, min_parent=min_parent)

    if max_depth is not None:
        assert tree.get_depth() <= max_depth
    for leaf in tree.leaves():
        pure = np.count_nonzero(leaf.class_counts) == 1
        at_depth = max_depth is not None and leaf.depth >= max_depth
        assert pure or at_depth or leaf.n_samples <= min_parent


def test_unlimited_tree_fits_its_training_rows(continuous_data):
    X, y, _, _ = continuous_data
    tree = grow(X, y)
    assert np.array_equal(tree.predict(X), y)


def test_constant_features_make_a_single_leaf():
    X = np.ones((8, 3))
    y = np.array([0, 1] * 4)
    tree = grow(X, y)
    assert len(tree) == 1
    assert tree.root.is_leaf
    assert tree.root.class_counts.tolist() == [4, 4]
    assert tree.root.label == 0


def test_missing_values_go_right():
    X = np.array([[0.0], [1.0], [2.0], [3.0], [np.nan], [np.inf]])
    y = np.array([0, 0, 1, 1, 0, 1])
    tree = grow(X, y, sampler=AxisAlignedSampler(1, 1))

    root = tree.root
    assert root.threshold == pytest.approx(1.5)
    assert tree[root.left].n_samples == 2
    assert tree[root.right].n_samples == 4
    leaf_ids = tree.apply(X)
    assert leaf_ids[4] == root.right
    assert leaf_ids[5] == root.right


def test_earliest_candidate_wins_ties():
    X = np.array([[0.0, 0.0], [1.0, 1.0], [5.0, 5.0], [6.0, 6.0]])
    y = np.array([0, 0, 1, 1])
    sampler = FixedPoolSampler([AxisAlignedSplit.on_feature(1), AxisAlignedSplit.on_feature(0)])
    tree = grow(X, y, sampler=sampler)
    assert tree.root.split.feature == 1


def test_stratified_subsampling_bounds_the_evaluated_sample(continuous_data):
    X, y, _, _ = continuous_data
    subsampler = StratifiedNodeSubsampler(node_size_to_bin=60, node_size_bin=30)
    tree = grow(X, y, subsampler=subsampler)

    large_internal = [n for n in tree if not n.is_leaf and n.n_samples > 60]
    assert large_internal
    for node in tree:
        if node.is_leaf:
            continue
        if node.n_samples > 60:
            assert node.n_evaluated == 30
        else:
            assert node.n_evaluated == node.n_samples
    # The split is still applied to every sample of the node
    assert sum(leaf.n_samples for leaf in tree.leaves()) == X.shape[0]


def test_entropy_criterion(continuous_data):
    X, y, _, _ = continuous_data
    tree = grow(X, y, criterion="entropy", max_depth=3)
    assert tree.get_depth() <= 3
    assert tree.root.impurity_decrease > 0


def test_feature_importance_covers_split_features():
    X = np.column_stack([np.zeros(6), [0.0, 1.0, 2.0, 10.0, 11.0, 12.0]])
    y = np.array([0, 0, 0, 1, 1, 1])
    importance = grow(X, y).feature_importance()
    assert importance[0] == 0.0
    assert importance[1] > 0.0


def test_impurity_of_empty_counts_is_zero():
    assert gini_impurity(np.array([0, 0, 0])) == 0.0
    assert entropy_impurity(np.array([0, 0, 0])) == 0.0
    assert gini_impurity(np.array([1, 1])) == pytest.approx(0.5)
