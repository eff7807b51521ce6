"""
Namespace Access

Determines which Kubernetes namespaces the current user may read charts from.
Access is checked with one SelfSubjectAccessReview per namespace, fanned out
over a thread pool.
"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Mapping, Optional

try:
    from kubernetes import client
    from kubernetes.client.rest import ApiException
except ImportError:
    raise ImportError("kubernetes library is required. Install with: pip install kubernetes")

from ..core.constants import KubernetesConstants, NetworkConstants
from ..core.exceptions import ValidationError
from ..core.protocols import AccessReviewProvider, NamespaceListProvider
from ..core.utils import handle_api_error

logger = logging.getLogger(__name__)


def _access_review(namespace: str) -> client.V1SelfSubjectAccessReview:
    return client.V1SelfSubjectAccessReview(
        spec=client.V1SelfSubjectAccessReviewSpec(
            resource_attributes=client.V1ResourceAttributes(
                group=KubernetesConstants.CORE_API_GROUP,
                resource=KubernetesConstants.ACCESS_REVIEW_RESOURCE,
                verb=KubernetesConstants.ACCESS_REVIEW_VERB,
                namespace=namespace,
            )
        )
    )


def _is_allowed(authorization_api: AccessReviewProvider, namespace: str) -> bool:
    response = authorization_api.create_self_subject_access_review(body=_access_review(namespace))
    return bool(response.status and response.status.allowed)


def filter_allowed_namespaces(authorization_api: AccessReviewProvider,
                              namespaces: List[client.V1Namespace],
                              max_workers: int = KubernetesConstants.DEFAULT_MAX_WORKERS) -> List[client.V1Namespace]:
    """
    Keep the namespaces in which the user may read secrets

    One access review is sent per namespace using up to max_workers threads.
    A failed review is logged and the namespace treated as not allowed.

    Args:
        authorization_api: Kubernetes AuthorizationV1Api (or compatible)
        namespaces: Namespaces to check
        max_workers: Upper bound on concurrent reviews

    Returns:
        List of allowed namespaces, in input order
    """
    if not namespaces:
        return []

    workers = max(1, min(len(namespaces), max_workers))
    allowed: Dict[int, bool] = {}
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ns-review") as pool:
        futures = {
            pool.submit(_is_allowed, authorization_api, ns.metadata.name): position
            for position, ns in enumerate(namespaces)
        }
        for future in as_completed(futures):
            position = futures[future]
            try:
                allowed[position] = future.result()
            except ApiException as e:
                name = namespaces[position].metadata.name
                logger.warning(f"Access review for namespace {name} failed: {e.status} {e.reason}")
                allowed[position] = False
            except Exception as e:
                name = namespaces[position].metadata.name
                logger.warning(f"Access review for namespace {name} failed: {e}")
                allowed[position] = False

    result = [ns for position, ns in enumerate(namespaces) if allowed.get(position)]
    logger.debug(f"{len(result)} of {len(namespaces)} namespaces allowed")
    return result


def filter_active_namespaces(namespaces: List[client.V1Namespace]) -> List[client.V1Namespace]:
    """Keep the namespaces in the Active phase"""
    return [
        ns for ns in namespaces
        if ns.status is not None and ns.status.phase == KubernetesConstants.ACTIVE_PHASE
    ]


def get_trusted_namespaces_from_header(headers: Mapping[str, str], header_name: str,
                                       header_pattern: str) -> List[client.V1Namespace]:
    """
    Read namespaces passed by a trusted proxy in a request header

    The header holds a comma separated list; the first group of header_pattern
    is taken from every item that matches it.

    Args:
        headers: Request headers
        header_name: Name of the header, matched case-insensitively
        header_pattern: Regular expression with one group capturing the namespace

    Returns:
        List of namespaces marked Active; empty when the header is missing

    Raises:
        ValidationError: If header_pattern is not a valid regular expression
    """
    if not header_name or not header_pattern:
        return []
    try:
        pattern = re.compile(header_pattern)
    except re.error as e:
        raise ValidationError(f"invalid namespace header pattern {header_pattern!r}: {e}") from e

    value = ""
    for key, header_value in headers.items():
        if key.lower() == header_name.lower():
            value = header_value
            break

    namespaces = []
    for item in value.split(','):
        match = pattern.search(item.strip())
        if match and match.groups() and match.group(1):
            namespaces.append(client.V1Namespace(
                metadata=client.V1ObjectMeta(name=match.group(1)),
                status=client.V1NamespaceStatus(phase=KubernetesConstants.ACTIVE_PHASE),
            ))
    return namespaces


def get_accessible_namespaces(core_api: NamespaceListProvider, authorization_api: AccessReviewProvider,
                              trusted_namespaces: Optional[List[client.V1Namespace]] = None,
                              max_workers: int = KubernetesConstants.DEFAULT_MAX_WORKERS,
                              fallback_core_api: Optional[NamespaceListProvider] = None) -> List[client.V1Namespace]:
    """
    List the active namespaces the user can access

    Trusted namespaces are used as given. Otherwise namespaces are listed
    with the user's credentials; when listing is forbidden they are listed
    with fallback_core_api and narrowed by access reviews.

    Args:
        core_api: CoreV1Api acting as the user
        authorization_api: AuthorizationV1Api acting as the user
        trusted_namespaces: Namespaces from a trusted header (optional)
        max_workers: Upper bound on concurrent access reviews
        fallback_core_api: CoreV1Api with permission to list namespaces (optional)

    Returns:
        List of accessible active namespaces

    Raises:
        FetchError: If namespaces cannot be listed
    """
    if trusted_namespaces:
        return filter_active_namespaces(trusted_namespaces)

    try:
        namespaces = list(core_api.list_namespace().items)
    except ApiException as e:
        if e.status != NetworkConstants.HTTPStatus.FORBIDDEN or fallback_core_api is None:
            handle_api_error(e, context="list namespaces")
        logger.debug("User cannot list namespaces, checking access per namespace")
        try:
            all_namespaces = list(fallback_core_api.list_namespace().items)
        except ApiException as fallback_error:
            handle_api_error(fallback_error, context="list namespaces")
        namespaces = filter_allowed_namespaces(authorization_api, all_namespaces, max_workers)

    return filter_active_namespaces(namespaces)
