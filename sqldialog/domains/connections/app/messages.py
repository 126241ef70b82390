"""User-facing strings for the connection dialog."""

from __future__ import annotations

PROFILE_NAME = "Profile Name"
SAVE_PASSWORD = "Save Password"
AZURE_ACCOUNT = "Azure Account"
TENANT_ID = "Tenant ID"
CONNECTION_STRING = "Connection String"
SELECT_AN_ACCOUNT = "Select an account"
SELECT_A_TENANT = "Select a tenant"

SERVER_IS_REQUIRED = "Server is required"
USERNAME_IS_REQUIRED = "User name is required"
AZURE_ACCOUNT_IS_REQUIRED = "Azure Account is required"
TENANT_ID_IS_REQUIRED = "Tenant ID is required"
CONNECTION_STRING_IS_REQUIRED = "Connection string is required"

SIGN_IN = "Sign In"
REFRESH_TOKEN = "Refresh Token"

AZURE_SIGN_IN_FAILED = "Azure sign in failed."
NO_SUBSCRIPTIONS_AVAILABLE = "No subscriptions available.  Adjust your subscription filters to try again."
ERROR_LOADING_AZURE_SUBSCRIPTIONS = "Error loading Azure subscriptions."
ERROR_LOADING_AZURE_DATABASES = "Error loading Azure databases."

DELETE = "Delete"
CANCEL = "Cancel"


def error_creating_firewall_rule(rule: str, message: str) -> str:
    return f"An error occurred while creating the firewall rule {rule}. {message}"


def error_loading_azure_account_info_for_tenant(tenant_id: str) -> str:
    return f"Error loading Azure account information for tenant ID '{tenant_id}'"


def error_loading_azure_databases_for_subscription(name: str, subscription_id: str) -> str:
    return f"Error loading Azure databases for subscription {name} ({subscription_id}).  Confirm that you have permission."


def confirm_delete_saved_connection(display_name: str) -> str:
    return f"Are you sure you want to delete the saved connection {display_name}?"
