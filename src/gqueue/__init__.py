"""gqueue — single-machine admission scheduler for long-running compute jobs.

Submitters append job records to a shared queue file; the daemon drains the
queue every few seconds, admits jobs that fit the free CPU cores and memory in
priority order, launches each one in a detached ``screen`` session, and
reclaims the reservation once the job drops its ``.done`` sentinel file.

Typical usage::

    from gqueue.config import QueueConfig
    from gqueue.submit import submit_job
    from gqueue.scheduler import Scheduler

    cfg = QueueConfig.from_yaml("/etc/gqueue/config.yaml")
    job = submit_job("/home/user/jobs/h2o.gjf", priority=7, config=cfg)
    Scheduler.from_config(cfg).tick()
"""

__version__ = "0.1.0"
