"""
Localized user-facing messages.

Every message a user can see (API errors, alert titles, validation
feedback) is looked up here by key. Internal error detail never goes
through this module; it is logged instead.

Locale resolution order: explicit ``locale`` argument, ``g.locale`` set per
request from Accept-Language, app ``DEFAULT_LOCALE``, then "fr".
"""

from flask import current_app, g, has_app_context, has_request_context

SUPPORTED_LOCALES = ("fr", "en")
FALLBACK_LOCALE = "fr"

_CATALOG: dict[str, dict[str, str]] = {
    "fr": {
        # ── Generic ──
        "internal_error": "Une erreur inattendue est survenue. Veuillez réessayer.",
        "validation_error": "Erreur de validation",
        "not_found": "{resource} introuvable",
        "permission_denied": "Permission refusée",
        "authentication_required": "Authentification requise",
        "field_required": "Le champ {field} est requis",
        "invalid_value": "Valeur invalide pour {field}",
        "invalid_status": "Statut invalide : {status}",
        "invalid_transition": "Impossible de passer de « {current} » à « {target} »",
        "feature_disabled": "Cette fonctionnalité est temporairement désactivée",
        "conflict": "Cette ressource existe déjà",
        # ── Role requests ──
        "user_not_found": "Utilisateur introuvable",
        "invalid_role": "Rôle cible invalide : {role}",
        "duplicate_request": "Vous avez déjà une demande en cours pour ce rôle",
        "upload_failed": "Échec du téléversement du document : {document_type}",
        "document_type_repeated": "Un seul fichier est accepté par type de document : {document_type}",
        "prerequisites_unmet": "Votre compte ne remplit pas les conditions requises pour ce rôle",
        "role_requests_closed": "Les demandes de changement de rôle sont temporairement fermées",
        "request_not_cancellable": "Cette demande ne peut plus être annulée",
        # ── Prerequisites ──
        "req.email_not_verified": "Adresse e-mail non vérifiée",
        "req.phone_missing": "Numéro de téléphone manquant",
        "req.city_missing": "Ville non renseignée",
        "req.oneci_not_verified": "Identité (ONECI) non vérifiée",
        "req.face_not_verified": "Vérification faciale non effectuée",
        "req.already_owner": "Vous êtes déjà propriétaire",
        "req.admin_cannot_request": "Les administrateurs ne peuvent pas demander de changement de rôle",
        "rec.verify_email": "Vérifiez votre adresse e-mail depuis le lien reçu",
        "rec.complete_profile": "Complétez votre profil (téléphone, ville)",
        "rec.verify_identity": "Lancez la vérification d'identité ONECI",
        "rec.verify_face": "Effectuez la vérification faciale",
        "rec.ready": "Votre compte est prêt pour la demande",
        # ── Form validation ──
        "form.full_name_length": "Le nom complet doit contenir entre 3 et 100 caractères",
        "form.phone_invalid": "Numéro de téléphone invalide",
        "form.address_short": "L'adresse doit contenir au moins 10 caractères",
        "form.city_unknown": "Ville non reconnue en Côte d'Ivoire, vérifiez l'orthographe",
        "form.owner_type_invalid": "Type de propriétaire invalide",
        "form.agency_name_short": "Le nom de l'agence doit contenir au moins 3 caractères",
        "form.agency_license_short": "Le numéro de licence doit contenir au moins 5 caractères",
        "form.professional_card_missing": "Une carte professionnelle est recommandée",
        "form.document_missing": "Document requis : {label}",
        "form.file_too_large": "{label} : fichier trop volumineux (10 Mo maximum)",
        "form.file_type_invalid": "{label} : type de fichier non autorisé",
        "form.file_name_too_long": "{label} : nom de fichier trop long",
        "form.image_low_quality": "{label} : image de faible qualité, le document pourrait être illisible",
        "form.id_number_invalid": "Numéro de pièce d'identité invalide",
        "form.bank_account_invalid": "Numéro de compte bancaire invalide",
        "form.bank_account_test": "Numéro de compte bancaire de test non accepté",
        "form.terms_required": "Vous devez accepter les conditions",
        "form.step_invalid": "Étape de formulaire inconnue : {step}",
        "form.email_unverified_warning": "Votre e-mail n'est pas vérifié, cela pourrait retarder le traitement",
        "form.status_check_failed": "Impossible de vérifier votre statut actuel, veuillez réessayer",
        "summary.name": "Nom : {value}",
        "summary.phone": "Téléphone : {value}",
        "summary.address": "Adresse : {address}, {city}",
        "summary.type": "Type : {value}",
        "summary.agency": "Agence : {value}",
        "summary.id_document": "Pièce d'identité : {value}",
        "summary.proof_of_address": "Justificatif de domicile : {value}",
        "summary.professional_card": "Carte professionnelle : {value}",
        "owner_type.particulier": "Particulier",
        "owner_type.agence": "Agence immobilière",
        "owner_type.professionnel": "Professionnel",
        "document.id_document": "Pièce d'identité",
        "document.proof_of_address": "Justificatif de domicile",
        "document.professional_card": "Carte professionnelle",
        "document.lease_contract": "Contrat de bail",
        "document.property_title": "Titre de propriété",
        # ── Certifications ──
        "lease_not_certifiable": "Le bail doit être signé ou actif pour être certifié",
        "certification_open": "Ce bail a déjà une certification en cours ou approuvée",
        "export_format_invalid": "Format d'export invalide : {fmt}",
        # ── Review queue ──
        "auto_action_invalid": "Action automatique invalide",
        "auto_action_note": "Traitement automatique après le délai de {hours} h",
        # ── Mandates ──
        "mandate_agency_invalid": "Le compte sélectionné n'est pas une agence",
        "mandate_self": "Un propriétaire ne peut pas se mandater lui-même",
        "mandate_fee_invalid": "Indiquez un taux de commission entre 0 et 100 ou des frais fixes positifs",
        "mandate_dates_invalid": "La date de fin doit être postérieure à la date de début",
        "mandate_type_invalid": "Type de mandat invalide",
        "billing_frequency_invalid": "Fréquence de facturation invalide",
        "permission_key_invalid": "Permission inconnue : {key}",
        # ── Alerts ──
        "alert.role_request.title": "Nouvelle demande de changement de rôle",
        "alert.role_request.message": "Un utilisateur demande à devenir {role}",
        "alert.role_request_approved.title": "Demande de changement de rôle approuvée",
        "alert.role_request_approved.message": "Votre compte est maintenant {role}",
        "alert.role_request_rejected.title": "Demande de changement de rôle refusée",
        "alert.role_request_rejected.message": "Votre demande pour devenir {role} a été refusée",
        "alert.certification_submitted.title": "Nouvelle demande de certification",
        "alert.certification_submitted.message": "Certification {number} en attente de revue",
        "alert.certification_approved.title": "Bail certifié",
        "alert.certification_approved.message": "La certification {number} a été approuvée",
        "alert.certification_rejected.title": "Certification refusée",
        "alert.certification_rejected.message": "La certification {number} a été refusée",
        "alert.certification_revoked.title": "Certification révoquée",
        "alert.certification_revoked.message": "La certification {number} a été révoquée",
        "alert.certification_expired.title": "Certification expirée",
        "alert.certification_expired.message": "La certification {number} a expiré sans décision",
        "alert.mandate_invitation.title": "Nouvelle proposition de mandat",
        "alert.mandate_invitation.message": "Un propriétaire vous propose un mandat de {mandate_type}",
        "alert.mandate_accepted.title": "Mandat accepté",
        "alert.mandate_accepted.message": "L'agence a accepté votre mandat",
        "alert.mandate_refused.title": "Mandat refusé",
        "alert.mandate_refused.message": "L'agence a refusé votre mandat",
        "alert.mandate_status.title": "Mandat mis à jour",
        "alert.mandate_status.message": "Le mandat est maintenant « {status} »",
    },
    "en": {
        "internal_error": "An unexpected error occurred. Please try again.",
        "validation_error": "Validation error",
        "not_found": "{resource} not found",
        "permission_denied": "Permission denied",
        "authentication_required": "Authentication required",
        "field_required": "Field {field} is required",
        "invalid_value": "Invalid value for {field}",
        "invalid_status": "Invalid status: {status}",
        "invalid_transition": "Cannot change status from '{current}' to '{target}'",
        "feature_disabled": "This feature is temporarily disabled",
        "conflict": "This resource already exists",
        "user_not_found": "User not found",
        "invalid_role": "Invalid target role: {role}",
        "duplicate_request": "You already have an open request for this role",
        "upload_failed": "Document upload failed: {document_type}",
        "document_type_repeated": "Only one file is accepted per document type: {document_type}",
        "prerequisites_unmet": "Your account does not meet the requirements for this role",
        "role_requests_closed": "Role change requests are temporarily closed",
        "request_not_cancellable": "This request can no longer be cancelled",
        "req.email_not_verified": "Email address not verified",
        "req.phone_missing": "Phone number missing",
        "req.city_missing": "City missing",
        "req.oneci_not_verified": "Identity (ONECI) not verified",
        "req.face_not_verified": "Facial verification not completed",
        "req.already_owner": "You are already an owner",
        "req.admin_cannot_request": "Administrators cannot request a role change",
        "rec.verify_email": "Confirm your email address from the link you received",
        "rec.complete_profile": "Complete your profile (phone, city)",
        "rec.verify_identity": "Start the ONECI identity verification",
        "rec.verify_face": "Complete the facial verification",
        "rec.ready": "Your account is ready to submit the request",
        "form.full_name_length": "Full name must be between 3 and 100 characters",
        "form.phone_invalid": "Invalid phone number",
        "form.address_short": "Address must be at least 10 characters",
        "form.city_unknown": "City not recognised in Côte d'Ivoire, check the spelling",
        "form.owner_type_invalid": "Invalid owner type",
        "form.agency_name_short": "Agency name must be at least 3 characters",
        "form.agency_license_short": "License number must be at least 5 characters",
        "form.professional_card_missing": "A professional card is recommended",
        "form.document_missing": "Required document: {label}",
        "form.file_too_large": "{label}: file too large (10 MB maximum)",
        "form.file_type_invalid": "{label}: file type not allowed",
        "form.file_name_too_long": "{label}: file name too long",
        "form.image_low_quality": "{label}: low quality image, the document may be unreadable",
        "form.id_number_invalid": "Invalid ID number",
        "form.bank_account_invalid": "Invalid bank account number",
        "form.bank_account_test": "Test bank account numbers are not accepted",
        "form.terms_required": "You must accept the terms",
        "form.step_invalid": "Unknown form step: {step}",
        "form.email_unverified_warning": "Your email is not verified, processing may be delayed",
        "form.status_check_failed": "Could not check your current status, please try again",
        "summary.name": "Name: {value}",
        "summary.phone": "Phone: {value}",
        "summary.address": "Address: {address}, {city}",
        "summary.type": "Type: {value}",
        "summary.agency": "Agency: {value}",
        "summary.id_document": "ID document: {value}",
        "summary.proof_of_address": "Proof of address: {value}",
        "summary.professional_card": "Professional card: {value}",
        "owner_type.particulier": "Individual",
        "owner_type.agence": "Real estate agency",
        "owner_type.professionnel": "Professional",
        "document.id_document": "ID document",
        "document.proof_of_address": "Proof of address",
        "document.professional_card": "Professional card",
        "document.lease_contract": "Lease contract",
        "document.property_title": "Property title",
        "lease_not_certifiable": "The lease must be signed or active to be certified",
        "certification_open": "This lease already has an open or approved certification",
        "export_format_invalid": "Invalid export format: {fmt}",
        "auto_action_invalid": "Invalid automatic action",
        "auto_action_note": "Processed automatically after the {hours}h deadline",
        "mandate_agency_invalid": "The selected account is not an agency",
        "mandate_self": "An owner cannot give a mandate to themselves",
        "mandate_fee_invalid": "Provide a commission rate between 0 and 100 or a positive fixed fee",
        "mandate_dates_invalid": "End date must be after start date",
        "mandate_type_invalid": "Invalid mandate type",
        "billing_frequency_invalid": "Invalid billing frequency",
        "permission_key_invalid": "Unknown permission: {key}",
        "alert.role_request.title": "New role change request",
        "alert.role_request.message": "A user asked to become {role}",
        "alert.role_request_approved.title": "Role change request approved",
        "alert.role_request_approved.message": "Your account is now {role}",
        "alert.role_request_rejected.title": "Role change request rejected",
        "alert.role_request_rejected.message": "Your request to become {role} was rejected",
        "alert.certification_submitted.title": "New certification request",
        "alert.certification_submitted.message": "Certification {number} is awaiting review",
        "alert.certification_approved.title": "Lease certified",
        "alert.certification_approved.message": "Certification {number} was approved",
        "alert.certification_rejected.title": "Certification rejected",
        "alert.certification_rejected.message": "Certification {number} was rejected",
        "alert.certification_revoked.title": "Certification revoked",
        "alert.certification_revoked.message": "Certification {number} was revoked",
        "alert.certification_expired.title": "Certification expired",
        "alert.certification_expired.message": "Certification {number} expired without a decision",
        "alert.mandate_invitation.title": "New mandate proposal",
        "alert.mandate_invitation.message": "An owner offers you a {mandate_type} mandate",
        "alert.mandate_accepted.title": "Mandate accepted",
        "alert.mandate_accepted.message": "The agency accepted your mandate",
        "alert.mandate_refused.title": "Mandate refused",
        "alert.mandate_refused.message": "The agency refused your mandate",
        "alert.mandate_status.title": "Mandate updated",
        "alert.mandate_status.message": "The mandate is now '{status}'",
    },
}


def current_locale() -> str:
    if has_request_context():
        loc = g.get("locale")
        if loc in SUPPORTED_LOCALES:
            return loc
    if has_app_context():
        loc = current_app.config.get("DEFAULT_LOCALE")
        if loc in SUPPORTED_LOCALES:
            return loc
    return FALLBACK_LOCALE


def translate(message_key: str, /, locale: str | None = None, **params) -> str:
    """Return the localized message for ``message_key``; unknown keys come back verbatim."""
    loc = locale if locale in SUPPORTED_LOCALES else current_locale()
    template = _CATALOG[loc].get(message_key) or _CATALOG[FALLBACK_LOCALE].get(message_key) or message_key
    try:
        return template.format(**params)
    except (KeyError, IndexError):
        return template
