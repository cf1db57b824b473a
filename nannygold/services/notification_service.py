from nannygold.extensions import db
from nannygold.models import Notification, User
from nannygold.decorators import ADMIN_ROLES


class NotificationService:
    """Records in-app notifications. Delivery (email, push) happens elsewhere."""

    @staticmethod
    def push(user_id, title, message, kind="general", data=None):
        notification = Notification(user_id=user_id, title=title, message=message, kind=kind, data=data)
        db.session.add(notification)
        db.session.flush()
        return notification

    @staticmethod
    def notify_admins(title, message, kind="admin_alert", data=None):
        admin_ids = [row.id for row in User.query.filter(User.role.in_(ADMIN_ROLES)).with_entities(User.id)]
        return [NotificationService.push(admin_id, title, message, kind=kind, data=data) for admin_id in admin_ids]
