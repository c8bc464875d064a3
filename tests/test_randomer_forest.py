"""Tests for growing whole forests."""

import json

import numpy as np
import pytest

from fprerf.models import RandomerForest
from fprerf.models.forest_components.config import ForestConfig
from fprerf.models.forest_components.exceptions import DimensionMismatchError, InvalidConfigError
from fprerf.models.forest_components.split_functions import SplitKind


def same_trees(first, second):
    if len(first) != len(second):
        return False
    for a, b in zip(first, second):
        if a.is_leaf != b.is_leaf or a.class_counts.tolist() != b.class_counts.tolist():
            return False
        if not a.is_leaf and (a.split != b.split or a.threshold != b.threshold
                              or (a.left, a.right) != (b.left, b.right)):
            return False
    return True


@pytest.fixture(scope="module")
def iris_forest(iris_data):
    X, y = iris_data
    return RandomerForest(forest_type="rfBase", num_trees_in_forest=10, seed=1).fit(X, y)


def test_iris_forest(iris_forest, iris_data):
    X, y = iris_data
    assert len(iris_forest.trees) == 10
    assert iris_forest.n_classes == 3
    assert iris_forest.n_features == 4
    assert iris_forest.classes.tolist() == [0, 1, 2]

    predictions = iris_forest.predict(X)
    assert predictions.shape == (150,)
    assert set(np.unique(predictions)) <= {0, 1, 2}
    assert iris_forest.evaluate(X, y)["accuracy"] > 0.9


def test_every_tree_uses_its_own_bootstrap_sample(iris_data):
    X, y = iris_data
    forest = RandomerForest(forest_type="rfBase", num_trees_in_forest=5, seed=3,
                            keep_node_samples=True).fit(X, y)
    assert len(forest.tree_rows) == 5
    for tree, rows in zip(forest.trees, forest.tree_rows):
        assert tree.root.n_samples == rows.shape[0] == X.shape[0]
        assert np.array_equal(tree.root.class_counts, np.bincount(y[rows], minlength=3))
    assert not np.array_equal(forest.tree_rows[0], forest.tree_rows[1])


def test_without_bootstrap_every_root_sees_all_samples(iris_data):
    X, y = iris_data
    forest = RandomerForest(forest_type="rerf", num_trees_in_forest=3, seed=3, bootstrap=False).fit(X, y)
    for tree in forest.trees:
        assert tree.root.class_counts.tolist() == [50, 50, 50]


@pytest.mark.parametrize("forest_type", ["rfBase", "binnedBaseRerF", "binnedBaseTern"])
def test_forest_is_independent_of_core_count(continuous_data, forest_type):
    X, y, _, _ = continuous_data
    single = RandomerForest(forest_type=forest_type, num_trees_in_forest=6, seed=42, num_cores=1).fit(X, y)
    threaded = RandomerForest(forest_type=forest_type, num_trees_in_forest=6, seed=42, num_cores=3).fit(X, y)
    for first, second in zip(single.trees, threaded.trees):
        assert same_trees(first, second)
    assert np.array_equal(single.predict(X), threaded.predict(X))


def test_seed_changes_the_forest(iris_data):
    X, y = iris_data
    first = RandomerForest(num_trees_in_forest=3, seed=1).fit(X, y)
    second = RandomerForest(num_trees_in_forest=3, seed=2).fit(X, y)
    assert not all(same_trees(a, b) for a, b in zip(first.trees, second.trees))


def test_split_kinds_per_forest_type(continuous_data):
    X, y, _, _ = continuous_data

    forest = RandomerForest(forest_type="rfBase", num_trees_in_forest=3, seed=5).fit(X, y)
    internal = [n for tree in forest.trees for n in tree if not n.is_leaf]
    assert all(n.kind == SplitKind.AXIS and len(n.split) == 1 for n in internal)

    forest = RandomerForest(forest_type="binnedBaseRerF", num_trees_in_forest=3, seed=5, mtry_mult=2.0).fit(X, y)
    internal = [n for tree in forest.trees for n in tree if not n.is_leaf]
    assert all(n.kind == SplitKind.OBLIQUE and set(n.split.weights) == {1.0} for n in internal)
    assert any(len(n.split) > 1 for n in internal)

    forest = RandomerForest(forest_type="binnedBaseTern", num_trees_in_forest=3, seed=5, mtry_mult=2.0).fit(X, y)
    weights = {w for tree in forest.trees for n in tree if not n.is_leaf for w in n.split.weights}
    assert weights == {-1.0, 1.0}


def test_structured_forest_on_images(digits_data):
    X, y = digits_data
    forest = RandomerForest(forest_type="S-RerF", num_trees_in_forest=5, seed=9, image_height=8,
                            image_width=8, patch_height_max=3, patch_width_max=3).fit(X, y)
    internal = [n for tree in forest.trees for n in tree if not n.is_leaf]
    assert internal
    for node in internal:
        assert node.kind == SplitKind.PATCH
        assert node.split.height <= 3 and node.split.width <= 3
    assert forest.evaluate(X, y)["accuracy"] > 0.8


def test_structured_forest_without_image_shape(digits_data):
    X, y = digits_data
    with pytest.raises(InvalidConfigError, match="imageHeight and imageWidth"):
        RandomerForest(forest_type="S-RerF", num_trees_in_forest=2).fit(X, y)


def test_invalid_config_is_reported_before_the_data():
    X = np.zeros((5, 2))
    y = np.zeros(3)
    forest = RandomerForest(num_trees_in_forest=2, node_size_to_bin=20, node_size_bin=50)
    with pytest.raises(InvalidConfigError, match="nodeSizeBin"):
        forest.fit(X, y)


def test_row_count_mismatch():
    with pytest.raises(DimensionMismatchError, match="different from Y length"):
        RandomerForest(num_trees_in_forest=2).fit(np.zeros((5, 2)), np.zeros(4))


def test_predict_with_wrong_feature_count(iris_forest):
    with pytest.raises(DimensionMismatchError):
        iris_forest.predict(np.zeros((3, 5)))


def test_non_integer_labels_are_rejected():
    with pytest.raises(ValueError, match="integer"):
        RandomerForest(num_trees_in_forest=2).fit(np.zeros((4, 2)), [0.5, 1.0, 0.0, 1.0])


def test_predict_before_fit():
    with pytest.raises(ValueError, match="not been fitted"):
        RandomerForest().predict(np.zeros((2, 2)))


def test_labels_are_mapped_back(iris_data):
    X, y = iris_data
    labels = np.array([10, 20, 30])[y]
    forest = RandomerForest(num_trees_in_forest=5, seed=4).fit(X, labels)
    assert forest.classes.tolist() == [10, 20, 30]
    assert set(np.unique(forest.predict(X))) <= {10, 20, 30}


def test_non_standard_forest_type_grows_default_variant(iris_data):
    X, y = iris_data
    with pytest.warns(UserWarning, match="non-standard forestType"):
        custom = RandomerForest(forest_type="myForest", num_trees_in_forest=3, seed=8).fit(X, y)
    default = RandomerForest(forest_type="binnedBaseRerF", num_trees_in_forest=3, seed=8).fit(X, y)
    for first, second in zip(custom.trees, default.trees):
        assert same_trees(first, second)


def test_missing_values_in_training_data(iris_data):
    X, y = iris_data
    X = X.copy()
    X[::7, 2] = np.nan
    forest = RandomerForest(forest_type="rfBase", num_trees_in_forest=5, seed=2).fit(X, y)
    assert forest.predict(X).shape == (150,)


def test_vote_counts_and_probabilities(iris_forest, iris_data):
    X, _ = iris_data
    votes = iris_forest.vote_counts(X)
    assert np.all(votes.sum(axis=1) == 10)
    assert np.allclose(iris_forest.predict_proba(X).sum(axis=1), 1.0)
    assert iris_forest.apply(X).shape == (150, 10)


def test_evaluate_metrics(iris_forest, iris_data):
    X, y = iris_data
    results = iris_forest.evaluate(X, y, metrics=["accuracy", "error"])
    assert results["accuracy"] + results["error"] == pytest.approx(1.0)
    with pytest.raises(ValueError, match="Unknown metric"):
        iris_forest.evaluate(X, y, metrics=["auc"])


def test_feature_importance(iris_forest):
    importance = iris_forest.get_feature_importance()
    assert importance.shape == (4,)
    assert importance.sum() == pytest.approx(1.0)
    assert np.all(importance >= 0)


def test_node_logs(iris_forest, tmp_path):
    logs = iris_forest.get_node_logs()
    assert len(logs) == sum(len(tree) for tree in iris_forest.trees)

    path = tmp_path / "logs.json"
    iris_forest.save_logs_to_json(str(path))
    with open(path) as f:
        saved = json.load(f)
    assert len(saved) == len(logs)
    assert {"tree_index", "node_id", "timestamp"} <= set(saved[0])


def test_info_and_summary(iris_forest, capsys):
    info = iris_forest.get_info()
    assert info["is_fitted"]
    assert info["num_trees_in_forest"] == 10
    assert info["classes"] == [0, 1, 2]

    iris_forest.print_training_summary()
    assert "RandomerForest Training Summary" in capsys.readouterr().out


def test_params():
    forest = RandomerForest(ForestConfig(num_trees_in_forest=4), mtry=2)
    assert forest.get_params()["num_trees_in_forest"] == 4
    assert forest.get_params()["mtry"] == 2
    forest.set_params(max_depth=3)
    assert forest.config.max_depth == 3
    with pytest.raises(ValueError, match="Invalid parameter"):
        forest.set_params(learning_rate=0.1)
    with pytest.raises(ValueError, match="Invalid parameter"):
        forest.set_params(variant="rfBase")
    assert forest.config.max_depth == 3


def test_refit_resolves_defaults_for_the_new_data():
    rng = np.random.default_rng(0)
    y = np.arange(50) % 2
    forest = RandomerForest(forest_type="rfBase", num_trees_in_forest=2, seed=1)

    forest.fit(rng.normal(size=(50, 4)), y)
    assert forest.config.mtry == 2
    assert forest.n_features == 4

    forest.fit(rng.normal(size=(50, 100)), y)
    assert forest.config.mtry == 10
    assert forest.n_features == 100
    assert forest.predict(rng.normal(size=(3, 100))).shape == (3,)


def test_refit_keeps_explicit_values():
    rng = np.random.default_rng(1)
    y = np.arange(40) % 2
    forest = RandomerForest(forest_type="rfBase", num_trees_in_forest=2, mtry=3, seed=1)
    forest.fit(rng.normal(size=(40, 4)), y)
    forest.fit(rng.normal(size=(40, 25)), y)
    assert forest.config.mtry == 3


def test_failed_refit_leaves_the_fitted_forest_intact(iris_data):
    X, y = iris_data
    forest = RandomerForest(forest_type="rfBase", num_trees_in_forest=3, seed=2).fit(X, y)
    trees = forest.trees
    expected = forest.predict(X)

    with pytest.raises(DimensionMismatchError):
        forest.fit(X[:, :2], y[:-1])

    assert forest.trees is trees
    assert forest.n_features == 4
    assert np.array_equal(forest.predict(X), expected)
    with pytest.raises(DimensionMismatchError):
        forest.predict(np.zeros((3, 2)))
