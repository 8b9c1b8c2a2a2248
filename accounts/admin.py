from django.contrib import admin

from .models import User


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ("id", "email", "name", "referral_code", "referred_by", "is_staff")
    search_fields = ("email", "name", "referral_code")
    raw_id_fields = ("referred_by",)
