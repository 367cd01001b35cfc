import logging
from functools import wraps
from typing import List, Optional, Tuple

from flask import current_app, g, jsonify, request

from lib.error_handler import AccessDeniedError, ConfigurationError

logger = logging.getLogger(__name__)

def email_allowed(email: str, allowed_domains: List[str]) -> bool:
    """An empty allow-list admits every authenticated user"""
    if not allowed_domains:
        return True
    domain = email.rsplit('@', 1)[-1].lower() if '@' in email else ''
    return domain in allowed_domains

def resolve_user(supabase_client, token: str) -> Optional[Tuple[str, str]]:
    """Return (user id, email) for a Supabase access token, or None if invalid"""
    try:
        response = supabase_client.auth.get_user(token)
    except Exception as e:
        logger.warning(f"Token validation failed: {str(e)}")
        return None
    user = getattr(response, 'user', None)
    if user is None or not getattr(user, 'email', None):
        return None
    return str(user.id), user.email

def require_user(f):
    """Require a Supabase session whose email domain is allow-listed.

    Sets ``g.user_id`` and ``g.user_email``; the email is recorded as the
    actor on every write made by the request.
    """
    @wraps(f)
    async def decorated_function(*args, **kwargs):
        auth_header = request.headers.get('Authorization')
        if not auth_header or not auth_header.startswith('Bearer '):
            return jsonify({'error': 'Authentication required'}), 401

        services = current_app.extensions['services']
        if services.supabase is None:
            raise ConfigurationError("Supabase environment variables are missing")

        resolved = resolve_user(services.supabase, auth_header.split(' ', 1)[1])
        if resolved is None:
            return jsonify({'error': 'Invalid or expired token'}), 401

        user_id, email = resolved
        if not email_allowed(email, services.settings.allowed_domains):
            logger.warning(f"Rejected {email}: domain not allowed")
            raise AccessDeniedError("Your email domain is not allowed to use this app")

        g.user_id = user_id
        g.user_email = email
        return await f(*args, **kwargs)

    return decorated_function
