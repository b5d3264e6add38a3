from django.apps import AppConfig
from django.utils.translation import gettext_lazy as _


class RepositoryConfig(AppConfig):

    default_auto_field = "django.db.models.BigAutoField"
    name = "casetreeserver.repository"
    verbose_name = _("Test Repository")
