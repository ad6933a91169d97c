"""Tests for nearest neighbour precomputation."""

import numpy as np
import pytest

from sigverify.distance import DistanceMatrix
from sigverify.neighbors import (
    Neighborhood, find_neighborhoods, group_signers, load_neighborhoods, nearest, save_neighborhoods,
)
from sigverify.signature import Database


class TestNearest:
    """Tests for neighbour selection from a distance matrix."""

    def test_excludes_self_and_sorts(self):
        values = np.array([
            [0.0, 3.0, 1.0, 2.0],
            [3.0, 0.0, 5.0, 4.0],
            [1.0, 5.0, 0.0, 6.0],
            [2.0, 4.0, 6.0, 0.0],
        ])
        hoods = nearest(DistanceMatrix(["a", "b", "c", "d"], values), k=2)
        assert hoods[0] == Neighborhood("a", ("c", "d"), (1.0, 2.0))
        assert hoods[1] == Neighborhood("b", ("a", "d"), (3.0, 4.0))

    def test_ties_keep_original_order(self):
        values = np.array([
            [0.0, 1.0, 1.0, 1.0],
            [1.0, 0.0, 1.0, 1.0],
            [1.0, 1.0, 0.0, 1.0],
            [1.0, 1.0, 1.0, 0.0],
        ])
        hoods = nearest(DistanceMatrix(["a", "b", "c", "d"], values), k=2)
        assert hoods[0].neighbor_ids == ("b", "c")
        assert hoods[3].neighbor_ids == ("a", "b")

    def test_zero_distance_duplicates_are_neighbours(self):
        values = np.zeros((3, 3))
        hoods = nearest(DistanceMatrix(["a", "b", "c"], values), k=2)
        assert hoods[1].neighbor_ids == ("a", "c")

    def test_fewer_candidates_than_k(self):
        values = np.array([[0.0, 1.0], [1.0, 0.0]])
        hoods = nearest(DistanceMatrix(["a", "b"], values), k=3)
        assert hoods[0].neighbor_ids == ("b",)


class TestFindNeighborhoods:
    """Tests for find_neighborhoods."""

    def test_serial_and_threaded_are_identical(self, random_traces):
        serial_matrix, serial = find_neighborhoods(random_traces, k=3, n_jobs=1)
        threaded_matrix, threaded = find_neighborhoods(random_traces, k=3, n_jobs=4)
        assert np.array_equal(serial_matrix.values, threaded_matrix.values)
        assert serial == threaded

    def test_every_signature_gets_k_neighbours(self, random_traces):
        _, hoods = find_neighborhoods(random_traces[:10], k=3, n_jobs=1)
        assert [h.primary_id for h in hoods] == [s.id for s in random_traces[:10]]
        for hood in hoods:
            assert len(hood.neighbor_ids) == 3
            assert hood.primary_id not in hood.neighbor_ids
            assert list(hood.neighbor_distances) == sorted(hood.neighbor_distances)

    def test_empty_input(self):
        with pytest.raises(ValueError):
            find_neighborhoods([])


class TestNeighborhoodFiles:
    """Tests for neighbourhood persistence and grouping."""

    def test_save_and_load(self, tmp_path):
        hoods = [
            Neighborhood("a", ("b", "c"), (0.1 + 0.2, 1.0 / 3)),
            Neighborhood("b", ("a", "c"), (2.5, 1e-17)),
        ]
        path = tmp_path / "neighbors.txt"
        save_neighborhoods(hoods, path)
        assert load_neighborhoods(path) == hoods

    def test_file_layout(self, tmp_path):
        path = tmp_path / "neighbors.txt"
        save_neighborhoods([Neighborhood("a", ("b",), (2.0,))], path)
        assert path.read_text() == "a b 2.0\n"

    def test_malformed_line(self, tmp_path):
        path = tmp_path / "neighbors.txt"
        path.write_text("a b 1.0 2.0\n")
        with pytest.raises(ValueError):
            load_neighborhoods(path)

    def test_group_signers(self, make_signature):
        database = Database(make_signature(i, [float(n)]) for n, i in enumerate("abc"))
        groups = group_signers([Neighborhood("a", ("c", "b"), (1.0, 2.0))], database)
        assert [s.id for s in groups["a"]] == ["a", "c", "b"]
