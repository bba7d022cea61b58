from celery import Celery

from routersync.services.scheduler_config import build_beat_schedule, get_celery_config

celery_app = Celery("routersync")
celery_app.conf.update(get_celery_config())
celery_app.conf.beat_schedule = build_beat_schedule()
celery_app.autodiscover_tasks(["routersync.tasks"])
