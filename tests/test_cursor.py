"""Tests for CursorTracker."""

import random
import threading

from alert_relay.cursor import CursorTracker


class TestAdmit:
    """Tests for watermark admission."""

    def test_first_item_admitted(self):
        """Test that the first item of an unseen source is admitted."""
        tracker = CursorTracker()

        assert tracker.admit("X", 42) is True
        assert tracker.watermark("X") == 42

    def test_duplicate_rejected(self):
        """Test that the same sequence id is rejected the second time."""
        tracker = CursorTracker()
        tracker.admit("X", 42)

        assert tracker.admit("X", 42) is False
        assert tracker.watermark("X") == 42

    def test_newer_item_admitted(self):
        """Test that a larger sequence id raises the watermark."""
        tracker = CursorTracker()
        tracker.admit("X", 42)

        assert tracker.admit("X", 43) is True
        assert tracker.watermark("X") == 43

    def test_older_item_rejected_without_regression(self):
        """Test that an older id is rejected and the watermark is kept."""
        tracker = CursorTracker()
        tracker.admit("X", 50)

        assert tracker.admit("X", 10) is False
        assert tracker.watermark("X") == 50

    def test_sources_are_independent(self):
        """Test that watermarks are tracked per source."""
        tracker = CursorTracker()
        tracker.admit("A", 100)

        assert tracker.admit("B", 5) is True
        assert tracker.snapshot() == {"A": 100, "B": 5}

    def test_unseen_source_watermark_is_zero(self):
        """Test the default watermark."""
        assert CursorTracker().watermark("nope") == 0

    def test_random_sequence_never_regresses(self):
        """Test the watermark is the running maximum of admitted ids."""
        rng = random.Random(7)
        tracker = CursorTracker()
        highest = 0

        for _ in range(500):
            seq = rng.randint(1, 200)
            admitted = tracker.admit("X", seq)
            assert admitted == (seq > highest)
            highest = max(highest, seq)
            assert tracker.watermark("X") == highest

    def test_uses_provided_lock(self):
        """Test that an injected lock is exposed for sharing."""
        lock = threading.Lock()

        assert CursorTracker(lock=lock).lock is lock


class TestConcurrentAdmit:
    """Stress tests for admission under contention."""

    def test_each_id_admitted_at_most_once(self):
        """Test that racing threads never admit the same id twice."""
        tracker = CursorTracker()
        admitted: list[int] = []
        admitted_lock = threading.Lock()
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            for seq in range(1, 501):
                if tracker.admit("X", seq):
                    with admitted_lock:
                        admitted.append(seq)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(admitted) == len(set(admitted))
        assert sorted(admitted) == list(range(1, 501))
        assert tracker.watermark("X") == 500

    def test_watermark_is_maximum_of_racing_ids(self):
        """Test that racing threads with shuffled ids end at the maximum."""
        tracker = CursorTracker()
        ids = list(range(1, 1001))

        def worker(seed: int):
            local = ids[:]
            random.Random(seed).shuffle(local)
            for seq in local:
                tracker.admit("X", seq)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert tracker.watermark("X") == 1000
