"""Request classification for the fetch interceptor."""

from .config import ClassifierRules
from .models import Request, RequestClass

DEFAULT_RULES = ClassifierRules()


def is_excluded(request: Request, rules: ClassifierRules = DEFAULT_RULES) -> bool:
    """Check if a request must bypass the interceptor entirely.

    Browser-extension schemes are never touched; the host handles them
    with its default behavior.
    """
    return request.scheme in rules.excluded_schemes


def classify(request: Request, rules: ClassifierRules = DEFAULT_RULES) -> RequestClass:
    """Assign a request to its routing class.

    Order matters: a document navigation under /api/ is still a navigation,
    and a script under /api/ is still a static asset.

    Args:
        request: The intercepted request.
        rules: Path prefixes and destinations to classify against.

    Returns:
        The RequestClass for this request.
    """
    if request.destination == "document" or request.mode == "navigate":
        return RequestClass.NAVIGATION

    path = request.path
    if path.startswith(rules.asset_prefixes) or request.destination in rules.static_destinations:
        return RequestClass.STATIC_ASSET

    if path.startswith(rules.api_prefixes):
        return RequestClass.API_CALL

    return RequestClass.OTHER
