# branches/admin.py

from django.contrib import admin

from branches.models import Branch, Company


@admin.register(Company)
class CompanyAdmin(admin.ModelAdmin):
    list_display = ("name", "is_active", "created_at")
    search_fields = ("name",)


@admin.register(Branch)
class BranchAdmin(admin.ModelAdmin):
    list_display = ("name", "code", "company", "timezone", "is_active")
    list_filter = ("company", "is_active")
    search_fields = ("name", "code")
