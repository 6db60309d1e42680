"""
Shared Constants

Numeric identifiers stored in the database for subscriptions, roles,
features, email types and languages.
"""


class SubscriptionType:
    TRIAL = 1
    BASIC = 2
    PROFESSIONAL = 3
    ENTERPRISE = 4


class RoleType:
    OWNER = 1
    ADMINISTRATOR = 2
    MANAGER = 3
    EMPLOYEE = 4


class Feature:
    STYLING = 1
    REPORTING = 2
    API_ACCESS = 3


class EmailType:
    CLIENT_WELCOME = 1
    RESEND_VERIFY_EMAIL = 2
    FORGOT_PASSWORD = 3
    FORGOT_ACCOUNT_DETAILS = 4
    RESET_PASSWORD_SUCCESS = 5


class BillingCycle:
    MONTHLY = 1
    YEARLY = 2


# Language ids as stored on client/user rows -> ISO 639-1 codes
LANGUAGE_CODES = {
    1: "en",
    2: "fr",
}

DEFAULT_LANGUAGE = "en"

# Every subscription has at least one feature so that user properties
# can always be loaded for a registered workspace.
DEFAULT_SUBSCRIPTION_FEATURES = {
    SubscriptionType.TRIAL: [Feature.STYLING, Feature.REPORTING],
    SubscriptionType.BASIC: [Feature.REPORTING],
    SubscriptionType.PROFESSIONAL: [Feature.STYLING, Feature.REPORTING],
    SubscriptionType.ENTERPRISE: [Feature.STYLING, Feature.REPORTING, Feature.API_ACCESS],
}


def language_id(code):
    """Map a language code ("en") to its stored id, or None if unknown."""
    for key, value in LANGUAGE_CODES.items():
        if value == code:
            return key
    return None


def language_code(language_id_value):
    """Map a stored language id to its code, "" if unknown or unset."""
    return LANGUAGE_CODES.get(language_id_value, "")
