"""
Configuración central de Celery.

Define la app de Celery, la conexión a Redis como broker,
y la configuración general de las tareas.
"""

from celery import Celery

from crm.config import get_settings

settings = get_settings()

# "crm" es el nombre que aparece en logs y Flower
celery_app = Celery(
    "crm",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    # Serialización: JSON es más seguro que pickle
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    timezone="UTC",
    enable_utc=True,

    # Las tareas se confirman DESPUÉS de ejecutarse.
    # Si el worker muere a mitad de una importación, Redis la reencola.
    task_acks_late=True,

    # Un worker solo toma una tarea a la vez
    worker_prefetch_multiplier=1,

    # Si el resultado no se recoge en 24h, se borra de Redis
    result_expires=86400,

    imports=["crm.tasks.lead_tasks"],
)
