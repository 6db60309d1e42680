"""
Translations

Message catalogue for API responses and outgoing email. Keys are
dotted ("validation.emptyWorkspaceURL"); placeholders use str.format
syntax. Unknown languages fall back to English and unknown keys to the
key itself so a missing translation never breaks a response.
"""
from typing import Optional

from portal.core.constants import DEFAULT_LANGUAGE

CATALOGUE = {
    "en": {
        "label.success": "Success",
        "validation.requestInvalidProperties": "The request contains invalid properties",
        "validation.clientInvalidProperties": "The workspace could not be validated",
        "validation.emptyWorkspaceURL": "This workspace URL does not exist",
        "validation.registeredWorkspaceURL": "This workspace URL is already registered",
        "validation.userInvalidProperties": "The user could not be authenticated",
        "validation.userDoesNotExist": "No account exists for this email address",
        "validation.invalidPasswordSupplied": "The password supplied is incorrect",
        "validation.tokenInvalidOrExpired": "Your session token is invalid or has expired",
        "validation.notAuthenticated": "You must be signed in to do this",
        "validation.loadUserPropertiesFailed": "The user properties could not be loaded",
        "validation.loadClientFailed": "The workspace could not be loaded",
        "validation.loadClientFeaturesFailed": "The workspace features could not be loaded",
        "validation.loadUserRolesFailed": "The user roles could not be loaded",
        "validation.loadUserFailed": "The user could not be loaded",
        "validation.invalidUserId": "The user is invalid or the email address is already verified",
        "validation.resetPasswordInvalidProperties": "The password could not be reset",
        "validation.emptyResetCode": "This password reset code does not exist",
        "validation.resetCodeAlreadyUsed": "This password reset code has already been used",
        "validation.resetCodeExpired": "This password reset code expired after {gracePeriod} hour(s)",
        "validation.verifyEmailInvalidProperties": "The email address could not be verified",
        "validation.emptyVerifyCode": "This verification code does not exist",
        "validation.verifyCodeAlreadyUsed": "This verification code has already been used",
        "validation.verifyCodeExpired": "This verification code expired after {gracePeriod} hour(s)",
        "validation.emailAlreadyVerified": "This email address has already been verified",
        "validation.rateLimitExceeded": "Too many requests, please try again later",
        "validation.internalError": "Internal server error",
        "email.clientWelcome.subject": "Welcome to {workspaceURL}",
        "email.clientWelcome.body": (
            "Hi {firstName},\n\n"
            "Your workspace is ready at {workspaceLink}.\n"
            "Please confirm your email address: {validationLink}\n"
        ),
        "email.resendVerifyEmail.subject": "Verify your email address",
        "email.resendVerifyEmail.body": (
            "Hi {firstName},\n\n"
            "Please confirm your email address: {validationLink}\n"
        ),
        "email.forgotPassword.subject": "Reset your password",
        "email.forgotPassword.body": (
            "Hi {firstName} {lastName},\n\n"
            "A password reset was requested for your {clientName} account.\n"
            "Reset your password: {resetPasswordLink}\n"
        ),
        "email.forgotAccountDetails.subject": "Your account details",
        "email.forgotAccountDetails.body": (
            "The following accounts are registered to this email address:\n\n"
            "{accounts}\n"
        ),
        "email.forgotAccountDetails.account": (
            "{firstName} {lastName} - {clientName}\n"
            "  Workspace: {workspaceLink}\n"
            "  Reset password: {resetPasswordLink}\n"
        ),
        "email.resetPasswordSuccess.subject": "Your password has been changed",
        "email.resetPasswordSuccess.body": (
            "Hi {firstName},\n\n"
            "The password for your {workspaceName} account was changed.\n"
        ),
    },
    "fr": {
        "label.success": "Succès",
        "validation.requestInvalidProperties": "La requête contient des propriétés invalides",
        "validation.clientInvalidProperties": "L'espace de travail n'a pas pu être validé",
        "validation.emptyWorkspaceURL": "Cette URL d'espace de travail n'existe pas",
        "validation.registeredWorkspaceURL": "Cette URL d'espace de travail est déjà enregistrée",
        "validation.userInvalidProperties": "L'utilisateur n'a pas pu être authentifié",
        "validation.userDoesNotExist": "Aucun compte n'existe pour cette adresse courriel",
        "validation.invalidPasswordSupplied": "Le mot de passe fourni est incorrect",
        "validation.tokenInvalidOrExpired": "Votre jeton de session est invalide ou a expiré",
        "validation.notAuthenticated": "Vous devez être connecté pour faire ceci",
        "validation.loadUserPropertiesFailed": "Les propriétés de l'utilisateur n'ont pas pu être chargées",
        "validation.loadClientFailed": "L'espace de travail n'a pas pu être chargé",
        "validation.loadClientFeaturesFailed": "Les fonctionnalités de l'espace de travail n'ont pas pu être chargées",
        "validation.loadUserRolesFailed": "Les rôles de l'utilisateur n'ont pas pu être chargés",
        "validation.loadUserFailed": "L'utilisateur n'a pas pu être chargé",
        "validation.invalidUserId": "L'utilisateur est invalide ou l'adresse courriel est déjà vérifiée",
        "validation.resetPasswordInvalidProperties": "Le mot de passe n'a pas pu être réinitialisé",
        "validation.emptyResetCode": "Ce code de réinitialisation n'existe pas",
        "validation.resetCodeAlreadyUsed": "Ce code de réinitialisation a déjà été utilisé",
        "validation.resetCodeExpired": "Ce code de réinitialisation a expiré après {gracePeriod} heure(s)",
        "validation.verifyEmailInvalidProperties": "L'adresse courriel n'a pas pu être vérifiée",
        "validation.emptyVerifyCode": "Ce code de vérification n'existe pas",
        "validation.verifyCodeAlreadyUsed": "Ce code de vérification a déjà été utilisé",
        "validation.verifyCodeExpired": "Ce code de vérification a expiré après {gracePeriod} heure(s)",
        "validation.emailAlreadyVerified": "Cette adresse courriel a déjà été vérifiée",
        "validation.rateLimitExceeded": "Trop de requêtes, veuillez réessayer plus tard",
        "validation.internalError": "Erreur interne du serveur",
    },
}


def translate(key: str, lng: Optional[str] = None, **params) -> str:
    """Look up key for lng, falling back to English, then to the key."""
    messages = CATALOGUE.get(lng or DEFAULT_LANGUAGE, {})
    template = messages.get(key)
    if template is None:
        template = CATALOGUE[DEFAULT_LANGUAGE].get(key, key)
    if params:
        return template.format(**params)
    return template


# Short alias used throughout the orchestrator, mirroring i18next's t()
t = translate


def negotiate_language(accept_language: Optional[str]) -> str:
    """
    Pick the best supported language from an Accept-Language header.

    "fr-CA,fr;q=0.9,en;q=0.8" -> "fr". Anything unparseable or unsupported
    yields the default language.
    """
    if not accept_language:
        return DEFAULT_LANGUAGE

    candidates = []
    for position, part in enumerate(accept_language.split(",")):
        pieces = part.strip().split(";")
        tag = pieces[0].strip().lower()
        if not tag or tag == "*":
            continue
        quality = 1.0
        for param in pieces[1:]:
            name, _, value = param.strip().partition("=")
            if name == "q":
                try:
                    quality = float(value)
                except ValueError:
                    quality = 0.0
        # Stable ordering: equal q-values keep header order
        candidates.append((-quality, position, tag.split("-")[0]))

    for negative_quality, _, primary in sorted(candidates):
        if negative_quality < 0 and primary in CATALOGUE:
            return primary
    return DEFAULT_LANGUAGE
