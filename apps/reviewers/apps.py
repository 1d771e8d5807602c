from django.apps import AppConfig


class ReviewersConfig(AppConfig):
    name = 'apps.reviewers'
    label = 'reviewers'
    default_auto_field = 'django.db.models.BigAutoField'

    def ready(self):
        from . import signals  # noqa: F401
