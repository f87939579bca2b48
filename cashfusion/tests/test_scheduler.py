import threading
import time
import unittest

from ..scheduler import Scheduler


class TestScheduler(unittest.TestCase):

    def setUp(self):
        self.scheduler = Scheduler(time.monotonic, name='test', num_threads=2, inactive_timeout=30)

    def tearDown(self):
        self.scheduler.stop()

    def test_runs_in_order(self):
        ran = []
        done = threading.Event()
        lock = threading.Lock()

        def job(tag):
            def run(job_num, lag):
                with lock:
                    ran.append(tag)
                    if len(ran) == 3:
                        done.set()
            return run

        now = time.monotonic()
        nums = [self.scheduler.schedule_job(now + dt, job(tag)) for tag, dt in (('c', 0.3), ('a', 0.05), ('b', 0.15))]
        self.assertEqual(nums, [0, 1, 2])
        self.assertTrue(done.wait(5))
        self.assertEqual(ran, ['a', 'b', 'c'])
        self.assertEqual(self.scheduler.pending_jobs, 0)

    def test_lag(self):
        lags = []
        done = threading.Event()

        def run(job_num, lag):
            lags.append(lag)
            done.set()

        self.scheduler.schedule_job(time.monotonic() - 2., run)
        self.assertTrue(done.wait(5))
        self.assertGreaterEqual(lags[0], 2.)

    def test_cancel(self):
        ran = threading.Event()
        marker = threading.Event()
        job_num = self.scheduler.schedule_job(time.monotonic() + 0.2, lambda jn, lag: ran.set())
        self.scheduler.schedule_job(time.monotonic() + 0.4, lambda jn, lag: marker.set())
        self.assertEqual(self.scheduler.pending_jobs, 2)
        self.assertTrue(self.scheduler.cancel_job(job_num))
        self.assertFalse(self.scheduler.cancel_job(job_num))
        self.assertEqual(self.scheduler.pending_jobs, 1)
        self.assertTrue(marker.wait(5))
        self.assertFalse(ran.is_set())

    def test_stop(self):
        ran = threading.Event()
        self.scheduler.schedule_job(time.monotonic() + 0.2, lambda jn, lag: ran.set())
        self.scheduler.stop()
        self.scheduler.join(5)
        self.assertFalse(any(t.is_alive() for t in self.scheduler.threadpool))
        self.assertFalse(ran.is_set())

    def test_no_more_jobs(self):
        ran = threading.Event()
        self.scheduler.schedule_job(time.monotonic() + 0.05, lambda jn, lag: ran.set())
        self.scheduler.no_more_jobs()
        self.scheduler.join(5)
        self.assertTrue(ran.is_set())
        self.assertFalse(any(t.is_alive() for t in self.scheduler.threadpool))


if __name__ == '__main__':
    unittest.main()
