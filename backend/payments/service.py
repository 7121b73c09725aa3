"""
Cas d'usage 'payments': création de session, passage en caisse, réconciliation, crédit.

Règles clés:
- L'issue d'un paiement ne vient jamais du client: l'URL de retour (ou le webhook)
  n'identifie que la session, la passerelle est interrogée pour connaître l'issue réelle.
- Une session quitte 'pending' au plus une fois (transition conditionnelle en base);
  seul l'appelant qui gagne une transition 'succeeded' crédite l'utilisateur.
- Rejouer une session terminale renvoie le même résultat, sans effet de bord.
"""
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple
import logging
import secrets
import time

import backend.config as config
import backend.catalog.repository as catalog_repository
import backend.credits.repository as credits_repository
from backend.catalog.models import PackageDefinition
from backend.payments import gateways
from backend.payments import repository
from backend.payments.errors import (
    CreditingDeferred,
    GatewayRejected,
    GatewayUnavailable,
    InvalidPackage,
    StorageError,
    UnknownSession,
    VerificationPending,
)
from backend.payments.models import (
    BuyerDetails,
    GatewayOutcome,
    OrderResult,
    Outcome,
    PaymentSession,
    ReconcileResult,
    ReturnUrls,
    SessionStatus,
)

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Payment successful! Your credits have been added to your account."
FAILURE_MESSAGES = {
    SessionStatus.DECLINED: "Your payment was declined. No charge was made.",
    SessionStatus.CANCELLED: "Your payment was cancelled. No charge was made.",
    SessionStatus.EXPIRED: "This payment session has expired. Please start a new purchase.",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)

def _parse_ts(value) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        ts = value
    else:
        try:
            ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)

def return_urls(session_id: str) -> ReturnUrls:
    """URLs de retour passerelle: la page d'arrivée n'est qu'un indice, 'cart' identifie la session."""
    base = config.BASE_URL.rstrip("/")
    return ReturnUrls(
        succeeded=f"{base}/payment/success?cart={session_id}",
        cancelled=f"{base}/payment/cancelled?cart={session_id}",
        declined=f"{base}/payment/declined?cart={session_id}",
    )


# ---------------------------------------------------------------------------
# Création de session / passage en caisse
# ---------------------------------------------------------------------------

def _load_package(package_id: str) -> PackageDefinition:
    row = catalog_repository.get_package(str(package_id or ""))
    if not row:
        raise InvalidPackage(detail=f"unknown package {package_id!r}")
    try:
        package = PackageDefinition.from_row(row)
    except ValueError as exc:
        raise InvalidPackage(detail=f"invalid package row {package_id!r}: {exc}") from exc
    if not package.active or package.total_credits <= 0:
        raise InvalidPackage(detail=f"package {package_id!r} is not purchasable")
    return package

def create_session(*, user_id: str, package_id: str) -> PaymentSession:
    """
    Crée une session 'pending' pour (user_id, package_id); user_id vient de require_user.
    - category/credits/montant sont figés à la création (instantané du pack).
    - Soulève InvalidPackage si le pack est inconnu, inactif ou sans crédits.
    """
    package = _load_package(package_id)
    row = {
        "session_id": secrets.token_urlsafe(32),
        "user_id": user_id,
        "package_id": package.id,
        "category": package.category.value,
        "credits": package.total_credits,
        "amount": f"{package.price:.2f}",
        "currency": package.currency,
        "status": SessionStatus.PENDING.value,
    }
    created = repository.insert_session(row)
    session = PaymentSession.from_row(created)
    logger.info("payments.create_session session=%s user_id=%s package_id=%s credits=%s",
                session.session_id, user_id, package.id, session.credits)
    return session

def start_checkout(*, user_id: str, package_id: str, buyer: BuyerDetails) -> Tuple[PaymentSession, OrderResult]:
    """
    Crée la session puis la commande passerelle (avec rejeu des erreurs transitoires).
    - GatewayRejected: la session est soldée 'declined' avec la raison, puis l'erreur remonte.
    - GatewayUnavailable (après rejeux): la session reste 'pending' sans commande;
      une réconciliation ultérieure la soldera 'cancelled'.
    """
    session = create_session(user_id=user_id, package_id=package_id)
    gateway = gateways.get_gateway()
    try:
        order = gateways.call_with_retry(gateway.initiate_order, session, buyer, return_urls(session.session_id))
    except GatewayRejected as exc:
        logger.warning("payments.start_checkout rejected session=%s detail=%s", session.session_id, exc.detail)
        repository.transition_terminal(session.session_id, SessionStatus.DECLINED.value, exc.detail or exc.message)
        raise
    except GatewayUnavailable:
        logger.error("payments.start_checkout gateway unavailable session=%s", session.session_id)
        raise

    repository.attach_gateway_order(session.session_id, gateway.name, order.order_ref)
    session = session.model_copy(update={"gateway": gateway.name, "gateway_order_ref": order.order_ref})
    return session, order

def issue_checkout_token(*, user_id: str, package_id: str, buyer: BuyerDetails) -> Dict[str, Any]:
    """
    Passage en caisse pour le shell natif: renvoie un jeton à usage unique que le navigateur
    système échange (sans cookie) contre une redirection vers la page de paiement.
    """
    session, order = start_checkout(user_id=user_id, package_id=package_id, buyer=buyer)
    token = secrets.token_urlsafe(32)
    expires_at = _now() + timedelta(seconds=config.CHECKOUT_TOKEN_TTL_SECONDS)
    repository.set_checkout_token(session.session_id, token, expires_at, order.redirect_url)
    return {
        "sessionId": session.session_id,
        "token": token,
        "redirectUrl": f"{config.BASE_URL.rstrip('/')}/api/v1/payments/checkout-redirect?token={token}",
    }

def redeem_checkout_token(token: str) -> str:
    """
    Consomme le jeton (usage unique) et renvoie l'URL de la page de paiement.
    Jeton inconnu, déjà utilisé ou expiré -> UnknownSession.
    """
    row = repository.consume_checkout_token(token)
    if not row:
        raise UnknownSession("This payment link is invalid or has already been used.")
    expires_at = _parse_ts(row.get("checkout_token_expires_at"))
    if expires_at is None or expires_at <= _now():
        raise UnknownSession("This payment link has expired. Please start again from the app.")
    url = row.get("checkout_redirect_url")
    if not url:
        raise UnknownSession("This payment link is invalid or has already been used.")
    return url


# ---------------------------------------------------------------------------
# Réconciliation
# ---------------------------------------------------------------------------

def _coerce_outcome(value) -> Optional[Outcome]:
    if value is None or isinstance(value, Outcome):
        return value
    try:
        return Outcome(str(value).strip().lower())
    except ValueError:
        return None

def _query_gateway(session: PaymentSession) -> GatewayOutcome:
    """
    Issue autoritaire pour une session 'pending' (montant/devise recoupés).
    - Sans commande passerelle, la commande n'a jamais existé: 'cancelled'.
    - Peut renvoyer Outcome.PENDING; laisse remonter GatewayUnavailable / GatewayRejected.
    """
    if not session.gateway_order_ref:
        return GatewayOutcome(outcome=Outcome.CANCELLED)
    gateway = gateways.get_gateway(session.gateway)
    outcome = gateways.call_with_retry(gateway.confirm_outcome, session)
    return gateways.check_amount(session, outcome)

def _success_result(entry: Dict[str, Any]) -> ReconcileResult:
    return ReconcileResult(
        success=True,
        message=SUCCESS_MESSAGE,
        status=SessionStatus.SUCCEEDED,
        spare_parts_credits=int(entry.get("spare_parts_balance") or 0),
        automotive_credits=int(entry.get("automotive_balance") or 0),
    )

def _failure_result(session: PaymentSession) -> ReconcileResult:
    reason = session.decline_reason if session.status is SessionStatus.DECLINED else None
    return ReconcileResult(
        success=False,
        message=FAILURE_MESSAGES.get(session.status, "Your payment could not be completed."),
        status=session.status,
        reason=reason,
    )

def _wait_for_entry(session_id: str) -> Optional[dict]:
    """Attend (borné) l'entrée du ledger écrite par l'appelant qui a gagné la transition."""
    deadline = time.monotonic() + max(0.0, config.LEDGER_SETTLE_WAIT_SECONDS)
    while True:
        entry = credits_repository.get_entry_by_session(session_id)
        if entry:
            return entry
        if time.monotonic() >= deadline:
            return None
        time.sleep(config.LEDGER_SETTLE_POLL_SECONDS)

def _replay(session: PaymentSession) -> ReconcileResult:
    """Résultat mémorisé d'une session terminale (aucun effet de bord)."""
    if session.status is SessionStatus.SUCCEEDED:
        entry = _wait_for_entry(session.session_id)
        if entry is None:
            logger.warning("payments.reconcile succeeded without ledger entry session=%s", session.session_id)
            raise CreditingDeferred(detail=f"no ledger entry yet for session={session.session_id}")
        return _success_result(entry)
    return _failure_result(session)

def _grant(session: PaymentSession) -> dict:
    return credits_repository.grant(
        session_id=session.session_id,
        user_id=session.user_id,
        category=session.category,
        credits=session.credits,
        amount_paid=session.amount,
        currency=session.currency,
    )

def _settle(session: PaymentSession, outcome: GatewayOutcome) -> ReconcileResult:
    """
    Solde la session avec une issue finale.
    - Perdre la transition (autre appelant plus rapide) -> rejeu du résultat gagnant.
    - Gagner une transition 'succeeded' -> crédit; un échec d'écriture n'est jamais avalé
      (CreditingDeferred, la réparation re-crédite).
    """
    status = outcome.outcome.terminal_status
    if status is None:
        raise ValueError("cannot settle a session with a pending outcome")
    reason = (outcome.reason or "declined") if status is SessionStatus.DECLINED else None

    won = repository.transition_terminal(session.session_id, status.value, reason)
    if won is None:
        logger.info("payments.reconcile lost transition session=%s, replaying", session.session_id)
        current = repository.get_session(session.session_id)
        if not current:
            raise StorageError(detail=f"session vanished session={session.session_id}")
        return _replay(PaymentSession.from_row(current))

    settled = PaymentSession.from_row(won)
    logger.info("payments.reconcile settled session=%s status=%s reason=%s",
                settled.session_id, settled.status.value, reason)
    if settled.status is not SessionStatus.SUCCEEDED:
        return _failure_result(settled)

    try:
        entry = _grant(settled)
    except StorageError as exc:
        logger.exception("payments.reconcile grant failed session=%s user_id=%s", settled.session_id, settled.user_id)
        raise CreditingDeferred(detail=exc.detail) from exc
    logger.info("payments.reconcile credited session=%s user_id=%s category=%s credits=%s",
                settled.session_id, settled.user_id, settled.category, settled.credits)
    return _success_result(entry)

def reconcile(session_id: str, claimed_outcome=None) -> ReconcileResult:
    """
    Réconcilie une session à partir d'un retour navigateur ou d'un webhook.
    - claimed_outcome: issue revendiquée par la page de retour (indice, jamais une preuve).
    - Session inconnue -> UnknownSession; session terminale -> rejeu.
    - Passerelle injoignable / encore en attente -> VerificationPending (session 'pending').
    """
    row = repository.get_session(session_id)
    if not row:
        logger.warning("payments.reconcile unknown session=%s", session_id)
        raise UnknownSession()
    session = PaymentSession.from_row(row)
    if session.status.is_terminal:
        return _replay(session)

    try:
        confirmed = _query_gateway(session)
    except GatewayUnavailable as exc:
        logger.warning("payments.reconcile gateway unavailable session=%s detail=%s", session_id, exc.detail)
        raise VerificationPending(detail=exc.detail) from exc
    except GatewayRejected as exc:
        logger.error("payments.reconcile status query rejected session=%s detail=%s", session_id, exc.detail)
        raise VerificationPending(detail=exc.detail) from exc

    claimed = _coerce_outcome(claimed_outcome)
    if claimed is not None and claimed is not confirmed.outcome:
        logger.warning("payments.reconcile claimed/confirmed mismatch session=%s claimed=%s confirmed=%s",
                       session_id, claimed.value, confirmed.outcome.value)
    if confirmed.outcome is Outcome.PENDING:
        raise VerificationPending(detail="gateway still reports pending")
    return _settle(session, confirmed)


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------

def expire_stale_sessions(max_age_minutes: Optional[int] = None, limit: int = 100) -> Dict[str, int]:
    """
    Balaye les sessions 'pending' trop anciennes.
    - La passerelle est interrogée d'abord: une issue finale (y compris un succès tardif,
      qui crédite) est appliquée; une réponse 'pending' -> 'expired'.
    - Passerelle injoignable ou requête de statut refusée: la session reste 'pending'
      (un refus de la requête ne dit rien du paiement) et passe en fin de file.
    Retour: compteurs par issue ({'expired': n, 'succeeded': n, 'skipped': n, ...}).
    """
    age = max_age_minutes if max_age_minutes is not None else config.PAYMENT_SESSION_TTL_MINUTES
    rows = repository.list_stale_pending(_now() - timedelta(minutes=age), limit=limit)
    summary: Counter = Counter()
    for row in rows:
        session = PaymentSession.from_row(row)
        try:
            outcome = _query_gateway(session)
        except GatewayUnavailable:
            summary["skipped"] += 1
            repository.mark_checked(session.session_id)
            continue
        except GatewayRejected as exc:
            logger.error("payments.expire status query rejected session=%s detail=%s",
                         session.session_id, exc.detail)
            summary["rejected"] += 1
            repository.mark_checked(session.session_id)
            continue
        if outcome.outcome is Outcome.PENDING:
            outcome = GatewayOutcome(outcome=Outcome.EXPIRED)
        try:
            result = _settle(session, outcome)
        except CreditingDeferred:
            summary["deferred"] += 1
            continue
        summary[result.status.value] += 1
    logger.info("payments.expire_stale_sessions checked=%s summary=%s", len(rows), dict(summary))
    return dict(summary)

def repair_uncredited_sessions(limit: int = 500) -> Dict[str, int]:
    """
    Re-crédite les sessions 'succeeded' sans entrée au ledger (écriture échouée après
    une transition gagnée), les plus anciennes d'abord, quel que soit leur âge.
    grant est idempotent par session: relancer le job est sans risque.
    """
    rows = repository.list_uncredited_succeeded(limit=limit)
    summary = {"checked": len(rows), "repaired": 0, "failed": 0}
    for row in rows:
        session = PaymentSession.from_row(row)
        try:
            _grant(session)
        except StorageError:
            logger.exception("payments.repair grant failed session=%s", session.session_id)
            summary["failed"] += 1
            continue
        logger.info("payments.repair credited session=%s user_id=%s", session.session_id, session.user_id)
        summary["repaired"] += 1
    return summary
