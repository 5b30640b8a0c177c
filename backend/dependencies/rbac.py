"""
RBAC dependencies for FastAPI routes
Role-based access control implemented as dependencies that run after authentication.
The role is 'admin' for admin accounts, otherwise the user type (PROVIDER/RECEIVER).
"""
from fastapi import HTTPException, status, Request
import logging

logger = logging.getLogger(__name__)

RESOURCES_FOR_ROLES = {
    'admin': {
        'admin': ['read', 'write', 'delete'],
        'users': ['read', 'write', 'delete'],
        'users/me': ['read', 'write'],
        'categories': ['read', 'write', 'delete'],
        'demands': ['read', 'write', 'delete'],
        'offers': ['read', 'write', 'delete'],
        'offer-submissions': ['write'],
        'reviews': ['read', 'write', 'delete'],
        'notifications': ['read', 'write'],
        'charity-activities': ['read', 'write', 'delete'],
        'settings': ['read', 'write', 'delete'],
        'analytics': ['read'],
    },
    'PROVIDER': {
        'users/me': ['read', 'write'],
        'users': ['read'],
        'categories': ['read'],
        'demands': ['read'],  # Filtered to approved demands in subscribed categories
        'offers': ['read', 'write'],
        'offer-submissions': ['write'],  # Only providers bid on demands
        'reviews': ['read', 'write'],
        'notifications': ['read', 'write'],
        'charity-activities': ['read', 'write', 'delete'],
        'settings': ['read'],
    },
    'RECEIVER': {
        'users/me': ['read', 'write'],
        'users': ['read'],
        'categories': ['read'],
        'demands': ['read', 'write', 'delete'],  # Own demands only
        'offers': ['read', 'write'],  # Accept/reject offers on own demands
        'reviews': ['read', 'write'],
        'notifications': ['read', 'write'],
        'charity-activities': ['read'],
        'settings': ['read'],
    },
}


def normalize_path(path: str) -> str:
    """Normalize request path for RBAC checking"""
    if path.startswith('/'):
        path = path[1:]

    segments = [segment for segment in path.split('/') if segment]
    if segments and segments[0] == 'api':
        segments = segments[1:]

    if len(segments) == 0:
        return path

    if segments[0] == 'admin':
        if len(segments) >= 2 and segments[1] == 'categories':
            return 'categories'
        return 'admin'

    if segments[0] == 'users':
        if len(segments) >= 2 and segments[1] == 'me':
            return 'users/me'
        return 'users'

    return segments[0]


def translate_method_to_action(method: str) -> str:
    """Map HTTP methods to RBAC actions"""
    method_permission_mapping = {
        'GET': 'read',
        'POST': 'write',
        'PUT': 'write',
        'PATCH': 'write',
        'DELETE': 'delete',
    }
    return method_permission_mapping.get(method.upper(), 'read')


def has_permission(user_role: str, resource_name: str, required_permission: str) -> bool:
    """Check if user role has permission for the resource and action"""
    if user_role not in RESOURCES_FOR_ROLES:
        return False

    user_permissions = RESOURCES_FOR_ROLES[user_role]

    if resource_name in user_permissions:
        return required_permission in user_permissions[resource_name]

    parent_resource = resource_name.split('/')[0] if '/' in resource_name else resource_name
    if parent_resource in user_permissions:
        return required_permission in user_permissions[parent_resource]

    return False


def require_permission(resource: str = None, permission: str = None):
    """
    Create an RBAC dependency that checks permissions

    Args:
        resource: Specific resource name (auto-detected if not provided)
        permission: Specific permission (auto-detected if not provided)
    """
    def check_rbac(request: Request):
        """RBAC dependency function"""
        try:
            current_user = getattr(request.state, 'current_user', None)
            if not current_user:
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Authentication required"
                )

            user_role = current_user.get('role') or 'RECEIVER'
            resource_name = resource or normalize_path(str(request.url.path))
            required_permission = permission or translate_method_to_action(request.method)

            logger.info(f"RBAC Check - User: {user_role}, Resource: {resource_name}, Permission: {required_permission}")

            if not has_permission(user_role, resource_name, required_permission):
                logger.warning(f"Access denied - User: {user_role}, Resource: {resource_name}, Permission: {required_permission}")
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Access denied. {user_role.title()} role does not have {required_permission} permission for {resource_name}"
                )

            return True

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"RBAC dependency error: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Authorization check failed"
            )

    return check_rbac


# Admin permissions
require_admin = require_permission("admin", "read")
require_admin_write = require_permission("admin", "write")
require_admin_delete = require_permission("admin", "delete")

# Category permissions (admin only for write/delete)
require_category_write = require_permission("categories", "write")
require_category_delete = require_permission("categories", "delete")

# Demand permissions (receivers own demands)
require_demand_read = require_permission("demands", "read")
require_demand_write = require_permission("demands", "write")
require_demand_delete = require_permission("demands", "delete")

# Offer permissions
require_offer_read = require_permission("offers", "read")
require_offer_write = require_permission("offers", "write")
require_offer_submit = require_permission("offer-submissions", "write")  # Providers only

# Review permissions
require_review_write = require_permission("reviews", "write")

# Charity activity permissions
require_charity_write = require_permission("charity-activities", "write")  # Providers only
require_charity_delete = require_permission("charity-activities", "delete")

# Settings (cities)
require_settings_write = require_permission("settings", "write")
require_settings_delete = require_permission("settings", "delete")

# Analytics (admin only)
require_analytics = require_permission("analytics", "read")
