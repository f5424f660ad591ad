from __future__ import annotations

from rest_framework import serializers

from .models import AuditLog
from .services import ELECTION_OBJECT_TYPE


class AuditLogSerializer(serializers.ModelSerializer):
	actor_username = serializers.CharField(source="actor.username", read_only=True, default=None)
	event_label = serializers.CharField(source="get_event_type_display", read_only=True)
	election_id = serializers.SerializerMethodField()

	class Meta:
		model = AuditLog
		fields = [
			"id",
			"created_at",
			"actor",
			"actor_username",
			"event_type",
			"event_label",
			"election_id",
			"object_type",
			"object_id",
			"path",
			"method",
			"status_code",
			"ip_address",
			"metadata",
		]
		read_only_fields = fields

	def get_election_id(self, obj: AuditLog) -> int | None:
		if obj.object_type != ELECTION_OBJECT_TYPE or not obj.object_id.isdigit():
			return None
		return int(obj.object_id)
