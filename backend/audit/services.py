from __future__ import annotations

import logging
from typing import Any, Optional

from django.http import HttpRequest

from .models import AuditLog

logger = logging.getLogger(__name__)

ELECTION_OBJECT_TYPE = "Election"


def _get_ip(request: HttpRequest) -> str:
	xff = (request.META.get("HTTP_X_FORWARDED_FOR") or "").strip()
	if xff:
		# XFF can contain multiple IPs: client, proxy1, proxy2...
		return xff.split(",")[0].strip()
	return (request.META.get("REMOTE_ADDR") or "").strip()


def _request_fields(request: Optional[HttpRequest]) -> dict[str, Any]:
	if request is None:
		return {}
	return {
		"path": (getattr(request, "path", "") or "")[:300],
		"method": (getattr(request, "method", "") or ""),
		"ip_address": _get_ip(request),
		"user_agent": (request.META.get("HTTP_USER_AGENT") or "")[:4000],
	}


def log_event(
	request: HttpRequest,
	*,
	event_type: str,
	object_type: str = "",
	object_id: str | int = "",
	status_code: Optional[int] = None,
	metadata: Optional[dict[str, Any]] = None,
) -> Optional[AuditLog]:
	"""Record an event performed by the authenticated staff user of `request`."""
	user = getattr(request, "user", None)
	if not getattr(user, "is_authenticated", False):
		return None

	return log_public_event(
		request,
		event_type=event_type,
		actor=user,
		object_type=object_type,
		object_id=object_id,
		status_code=status_code,
		metadata=metadata,
	)


def log_public_event(
	request: Optional[HttpRequest],
	*,
	event_type: str,
	actor=None,
	object_type: str = "",
	object_id: str | int = "",
	status_code: Optional[int] = None,
	metadata: Optional[dict[str, Any]] = None,
) -> AuditLog:
	"""Record an event that may not have an authenticated actor (voters, login)."""
	obj_id_str = str(object_id) if object_id is not None else ""
	entry = AuditLog.objects.create(
		actor=actor,
		event_type=event_type,
		object_type=object_type or "",
		object_id=obj_id_str,
		status_code=status_code,
		metadata=metadata or {},
		**_request_fields(request),
	)
	logger.debug("audit.%s object=%s:%s", event_type, entry.object_type, entry.object_id)
	return entry


def record_event(
	*,
	event_type: str,
	election=None,
	actor=None,
	metadata: Optional[dict[str, Any]] = None,
	request: Optional[HttpRequest] = None,
	status_code: Optional[int] = None,
) -> AuditLog:
	"""Record an election scoped event; `election` may be an instance or a pk."""
	election_id = getattr(election, "pk", election)
	return log_public_event(
		request,
		event_type=event_type,
		actor=actor,
		object_type=ELECTION_OBJECT_TYPE if election_id is not None else "",
		object_id=election_id if election_id is not None else "",
		status_code=status_code,
		metadata=metadata,
	)


def election_events(election):
	election_id = getattr(election, "pk", election)
	return AuditLog.objects.filter(object_type=ELECTION_OBJECT_TYPE, object_id=str(election_id))
