import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, ConfigDict, EmailStr
from starlette.concurrency import run_in_threadpool
from starlette.status import HTTP_303_SEE_OTHER

from drinkshop import config
from drinkshop.utils.security import require_user
from drinkshop.utils.rate_limit import optional_rate_limit
from drinkshop.payments import paystack_client
from drinkshop.payments import service as payments_service
from drinkshop.payments.errors import (
    AuthenticationFailed,
    GatewayError,
    MalformedPayload,
    PaymentNotSuccessful,
    PersistenceFailure,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["Payments API"])


class CustomerIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    fullName: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None


class CheckoutBody(CustomerIn):
    """Champs client à plat (ancien format) ou imbriqués sous 'customer'; l'imbriqué l'emporte."""
    reference: Optional[str] = None
    customer: Optional[CustomerIn] = None
    deliveryDate: Optional[str] = None
    deliveryTime: Optional[str] = None
    vendor: Optional[str] = None

    def customer_fields(self) -> Dict[str, Any]:
        flat = self.model_dump(include=set(CustomerIn.model_fields), exclude_none=True)
        nested = self.customer.model_dump(exclude_none=True) if self.customer else {}
        return {**flat, **nested}

    def extras(self) -> Dict[str, Any]:
        return self.model_dump(include={"deliveryDate", "deliveryTime", "vendor"}, exclude_none=True)

# module drinkshop.payments.views
@router.post("/initialize", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
async def initialize_payment(body: CheckoutBody, user: dict = Depends(require_user)):
    """
    Initialise une transaction Paystack pour le panier serveur de l'utilisateur authentifié.
    - Montant calculé au prix catalogue (jamais depuis le client)
    - Réponse: {success, authorization_url, reference}
    - Erreurs: 400 panier vide / email manquant, 502 passerelle indisponible
    """
    try:
        return await run_in_threadpool(
            payments_service.initialize_checkout,
            user,
            customer_fields=body.customer_fields(),
            extras=body.extras(),
        )
    except MalformedPayload as e:
        raise HTTPException(status_code=400, detail=str(e))
    except GatewayError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except Exception:
        logger.exception("Erreur initialize_payment")
        raise HTTPException(status_code=500, detail="Payment initialization failed")

@router.post("/webhook", include_in_schema=False)
async def paystack_webhook(request: Request, background_tasks: BackgroundTasks):
    """
    Webhook Paystack: consomme charge.success pour matérialiser la commande.
    - Signature: HMAC-SHA512 du corps brut (x-paystack-signature), vérifiée avant tout parsing
    - Réponses 200: {"status": "ok"} créée, {"status": "duplicate"} déjà traitée, {"status": "ignored"}
    - Erreurs: 401 signature invalide, 400 payload inexploitable, 500 persistance (Paystack réessaiera)
    - Effets post-commit (panier, e-mails) exécutés après la réponse
    """
    try:
        body = await paystack_client.parse_event(request)
        result = await run_in_threadpool(
            payments_service.handle_webhook, body, schedule=background_tasks.add_task
        )
        return JSONResponse(result)
    except AuthenticationFailed:
        raise HTTPException(status_code=401, detail="Invalid signature")
    except MalformedPayload as e:
        logger.warning("payments.webhook malformed reference=%s error=%s", e.reference, e)
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceFailure as e:
        logger.error("payments.webhook persistence failure reference=%s error=%s", e.reference, e)
        raise HTTPException(status_code=500, detail="Order could not be saved")
    except Exception:
        logger.exception("Erreur paystack_webhook")
        raise HTTPException(status_code=500, detail="Webhook processing failed")

@router.get("/verify/{reference}")
async def verify_payment(reference: str, background_tasks: BackgroundTasks):
    """
    Alternative sans webhook (retour navigateur depuis Paystack).
    - Commande déjà présente: simple redirection, aucun appel passerelle
    - Sinon vérifie la transaction puis matérialise comme le webhook
    - Succès: 303 vers la page commandes du front
    """
    try:
        await run_in_threadpool(
            payments_service.confirm_by_reference, reference, schedule=background_tasks.add_task
        )
    except (PaymentNotSuccessful, MalformedPayload) as e:
        raise HTTPException(status_code=400, detail=str(e) or "Payment failed")
    except GatewayError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except PersistenceFailure:
        logger.exception("Erreur verify_payment reference=%s", reference)
        raise HTTPException(status_code=500, detail="Order could not be saved")
    except Exception:
        logger.exception("Erreur verify_payment reference=%s", reference)
        raise HTTPException(status_code=500, detail="Payment verification failed")
    return RedirectResponse(url=config.ORDERS_REDIRECT_URL, status_code=HTTP_303_SEE_OTHER)

@router.post("/checkout-callback", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
async def checkout_callback(
    body: CheckoutBody,
    background_tasks: BackgroundTasks,
    user: dict = Depends(require_user),
):
    """
    Checkout manuel depuis le panier serveur (paymentStatus "pending").
    - Entrée JSON: {reference, customer?: {...}, deliveryDate?, deliveryTime?, vendor?}
    - 201 si créée, 200 si la référence existait déjà (même commande renvoyée)
    - Erreurs: 400 si référence manquante ou panier vide
    """
    if not (body.reference or "").strip():
        raise HTTPException(status_code=400, detail="Missing payment reference")
    try:
        result = await run_in_threadpool(
            payments_service.checkout_from_cart,
            user,
            body.reference,
            customer_fields=body.customer_fields(),
            extras=body.extras(),
            schedule=background_tasks.add_task,
        )
    except MalformedPayload as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceFailure:
        logger.exception("Erreur checkout_callback reference=%s", body.reference)
        raise HTTPException(status_code=500, detail="Order could not be saved")
    except Exception:
        logger.exception("Erreur checkout_callback reference=%s", body.reference)
        raise HTTPException(status_code=500, detail="Checkout failed")
    return JSONResponse(
        {"success": True, "created": result.created, "order": result.order},
        status_code=201 if result.created else 200,
    )
