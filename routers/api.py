from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.account import Account, AccountSummary, Address
from models.hateoas import HALLink
from routers import health
from services.database import get_db
from services.rest_service import RestServiceBuilder
from utils.hateoas import hal_formatter, links_header_formatter


router = APIRouter()

rest = (
    RestServiceBuilder()
    .use(links_header_formatter)
    .use(hal_formatter)
)

# -----------------------------------------------------------------------------
# /api/accounts
# -----------------------------------------------------------------------------
accounts = (
    rest.mount_at(router, "/api")
    .resource("accounts")
    .description("Customer accounts")
    .page_size(25)
    .named_query("active", {"active": 1})
    .for_entity("accounts")
    .for_constraint("accounts_email_key").throws_error("An account with this email already exists.")
    # SQLite reports the column instead of the constraint name
    .for_constraint("accounts.email").throws_error("An account with this email already exists.")
    .endpoint()
)

# -----------------------------------------------------------------------------
# /api/accounts/{account_id}/addresses
# -----------------------------------------------------------------------------
addresses = (
    rest.mount_at(accounts)
    .resource("addresses")
    .description("Postal addresses of an account")
    .page_size(10)
    .for_entity("addresses")
    .endpoint()
)

# -----------------------------------------------------------------------------
# /api/accounts/{account_id}/summary
# -----------------------------------------------------------------------------
async def account_summary(request: Request, account_id: int, db: AsyncSession = Depends(get_db)):
    account = await db.get(Account, account_id)
    if account is None:
        raise HTTPException(status_code=404, detail="Account not found")

    result = await db.execute(
        select(func.count()).select_from(Address).where(Address.account_id == account_id)
    )
    return AccountSummary(
        id=account.id,
        name=account.name,
        email=account.email,
        address_count=result.scalar_one(),
        links=[HALLink(name="self", href=str(request.url.path))],
    )

summary = (
    rest.mount_at(accounts)
    .resource("summary")
    .for_verbs()
    .on_get(account_summary)
    .endpoint()
)

# -----------------------------------------------------------------------------
# /api/ and /api/health
# -----------------------------------------------------------------------------
api = (
    rest.mount_at(router, "/")
    .resource("api")
    .for_endpoints([accounts])
    .endpoint()
)

health_endpoint = (
    rest.mount_at(api)
    .resource("health")
    .description("Service health")
    .for_router(health.router)
)
