from django.contrib import admin

from .models import Ballot, Candidate, Election, Portfolio, Vote, VoteAccessSession, VoterToken


class CandidateInline(admin.TabularInline):
    model = Candidate
    extra = 0
    fields = ("full_name", "photo_url")


@admin.register(Election)
class ElectionAdmin(admin.ModelAdmin):
    list_display = ("id", "title", "status", "department", "start_time", "end_time", "created_at")
    list_filter = ("status",)
    search_fields = ("title", "department")


@admin.register(Portfolio)
class PortfolioAdmin(admin.ModelAdmin):
    list_display = ("id", "title", "election", "ballot_order")
    list_filter = ("election",)
    search_fields = ("title",)
    inlines = [CandidateInline]


@admin.register(Candidate)
class CandidateAdmin(admin.ModelAdmin):
    list_display = ("id", "full_name", "portfolio")
    search_fields = ("full_name",)


@admin.register(VoterToken)
class VoterTokenAdmin(admin.ModelAdmin):
    list_display = ("id", "election", "used", "issued_at", "used_at")
    list_filter = ("used", "election")
    readonly_fields = ("used", "used_at")


@admin.register(VoteAccessSession)
class VoteAccessSessionAdmin(admin.ModelAdmin):
    list_display = ("id", "voter_token", "expires_at", "created_at")
    readonly_fields = ("token_hash",)


class ReadOnlyVotingAdmin(admin.ModelAdmin):
    """Ballots and votes are written only by the recorder."""

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Ballot)
class BallotAdmin(ReadOnlyVotingAdmin):
    list_display = ("id", "election", "cast_at")
    list_filter = ("election",)


@admin.register(Vote)
class VoteAdmin(ReadOnlyVotingAdmin):
    list_display = ("id", "election", "portfolio", "candidate", "cast_at")
    list_filter = ("election", "portfolio")
