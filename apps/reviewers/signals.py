from django.db.models.signals import post_save
from django.dispatch import receiver

from apps.identity.models import User, UserRole
from apps.identity.permissions import REVIEWER_ROLES
from .models import ReviewerProfile, SelectionStatus


@receiver(post_save, sender=User)
def create_reviewer_profile(sender, instance, **kwargs):
    """
    Give every reviewer-role user a profile. Holding the role means the
    programme already selected them; lead qualification starts from the
    role and is managed on the profile afterwards.
    """
    if instance.role not in REVIEWER_ROLES:
        return
    ReviewerProfile.objects.get_or_create(
        user=instance,
        defaults={
            'selection_status': SelectionStatus.SELECTED,
            'is_lead_qualified': instance.role == UserRole.LEAD_REVIEWER,
        },
    )
