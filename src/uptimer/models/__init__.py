from uptimer.models.user import User
from uptimer.models.monitor import Monitor
from uptimer.models.cron_job import CronJob
from uptimer.models.incident import Incident
from uptimer.models.incident_event import IncidentEvent
from uptimer.models.test_run import TestRun

__all__ = ["User", "Monitor", "CronJob", "Incident", "IncidentEvent", "TestRun"]
