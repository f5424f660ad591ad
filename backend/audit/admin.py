from django.contrib import admin

from .models import AuditLog


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
	"""Audit rows are append-only: the admin only browses them."""

	list_display = ("created_at", "event_type", "object_type", "object_id", "actor", "status_code", "ip_address")
	list_filter = ("event_type", "object_type")
	search_fields = ("object_id", "actor__username", "ip_address")
	date_hierarchy = "created_at"

	def get_readonly_fields(self, request, obj=None):
		return [field.name for field in self.model._meta.fields]

	def has_add_permission(self, request):
		return False

	def has_change_permission(self, request, obj=None):
		return False

	def has_delete_permission(self, request, obj=None):
		return False
