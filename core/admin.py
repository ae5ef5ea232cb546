from django import forms
from django.contrib import admin
from django.contrib.auth.hashers import make_password
from django.utils.translation import gettext_lazy as _
from unfold.admin import ModelAdmin
from unfold.decorators import display
from unfold.contrib.filters.admin import RangeDateTimeFilter

from .models import Branch, User, Customer


class UserAdminForm(forms.ModelForm):
    password = forms.CharField(
        label=_("Password"),
        widget=forms.PasswordInput(attrs={'placeholder': 'Enter password'}),
        required=False,
    )

    class Meta:
        model = User
        fields = '__all__'

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        if self.instance and self.instance.pk:
            self.fields['password'].help_text = _("Leave blank to keep the current password.")
        else:
            self.fields['password'].required = True

    def clean_password(self):
        password = self.cleaned_data.get('password')
        if self.instance.pk and not password:
            return None
        if password and len(password) < 4:
            raise forms.ValidationError(_("Password must be at least 4 characters long."))
        return password

    def clean(self):
        cleaned = super().clean()
        if cleaned.get('role') != User.RoleChoices.ADMIN and not cleaned.get('branch'):
            self.add_error('branch', _("Non-admin users must be bound to a branch."))
        return cleaned

    def save(self, commit=True):
        user = super().save(commit=False)
        password = self.cleaned_data.get('password')
        if password:
            user.password = make_password(password)
        elif user.pk:
            user.password = User.objects.values_list('password', flat=True).get(pk=user.pk)
        if commit:
            user.save()
        return user


@admin.register(Branch)
class BranchAdmin(ModelAdmin):
    list_display = ['id', 'name', 'code', 'phone', 'active_badge', 'created_at']
    list_filter = ['is_active', ('created_at', RangeDateTimeFilter)]
    search_fields = ['name', 'code', 'phone']
    list_filter_submit = True
    readonly_fields = ['uuid', 'created_at', 'updated_at']

    @display(description=_("Status"), label=True)
    def active_badge(self, obj):
        if obj.is_active:
            return 'success', _("Active")
        return 'danger', _("Inactive")

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(User)
class UserAdmin(ModelAdmin):
    form = UserAdminForm
    list_display = ['id', 'full_name', 'email', 'role_badge', 'branch', 'status_badge', 'last_login_at']
    list_filter = ['role', 'status', 'branch', ('last_login_at', RangeDateTimeFilter)]
    search_fields = ['first_name', 'last_name', 'email']
    list_filter_submit = True

    fieldsets = (
        (_('Personal Information'), {
            'fields': ('first_name', 'last_name', 'email'),
            'classes': ['tab'],
        }),
        (_('Access & Scope'), {
            'fields': ('role', 'branch', 'status', 'password'),
            'classes': ['tab'],
            'description': _('Admins see every branch; other roles work only in their own branch.'),
        }),
    )

    @display(description=_("Name"), ordering='first_name')
    def full_name(self, obj):
        return obj.full_name

    @display(description=_("Role"), label=True)
    def role_badge(self, obj):
        colors = {
            'admin': 'danger',
            'manager': 'warning',
            'staff': 'info',
            'cashier': 'success',
        }
        return colors.get(obj.role, 'info'), obj.get_role_display()

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        if obj.status == User.UserStatus.ACTIVE:
            return 'success', obj.get_status_display()
        return 'danger', obj.get_status_display()


@admin.register(Customer)
class CustomerAdmin(ModelAdmin):
    list_display = ['id', 'name', 'phone', 'email', 'created_at']
    search_fields = ['name', 'phone', 'email']
