import argparse
import asyncio

from app.core.config import get_settings
from app.core.database import SessionLocal, engine, Base
from app.core.tokens import get_token_codec
from app import models  # noqa: F401 register tables
from app.services.invite_service import InviteService, DEFAULT_EXPIRY, build_invite_link

settings = get_settings()


async def create_invites(form_key: str, count: int = 10, days=DEFAULT_EXPIRY, max_uses: int = 1, note=None):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with SessionLocal() as db:
        service = InviteService(db, get_token_codec())
        print(f"Generating {count} invites for form '{form_key}'...")
        links = []
        for _ in range(count):
            token, invite = await service.issue(form_key, expires_in_days=days, note=note, max_uses=max_uses)
            links.append((invite, build_invite_link(settings.PUBLIC_BASE_URL, token)))

        print(f"Successfully created {len(links)} invites:")
        for invite, link in links:
            expiry = invite.expires_at.isoformat(timespec="minutes") if invite.expires_at else "never"
            print(f"- {invite.id} (expires {expiry}): {link}")
    return links


def main(argv=None):
    parser = argparse.ArgumentParser(description="Issue invite links from the command line")
    parser.add_argument("--form-key", default=settings.INVITE_DEFAULT_FORM_KEY)
    parser.add_argument("--count", type=int, default=10)
    parser.add_argument("--days", type=int, default=None, help="validity in days (default from settings)")
    parser.add_argument("--no-expiry", action="store_true", help="issue invites that never expire")
    parser.add_argument("--max-uses", type=int, default=1)
    parser.add_argument("--note", default=None)
    args = parser.parse_args(argv)

    days = DEFAULT_EXPIRY
    if args.no_expiry:
        days = None
    elif args.days is not None:
        days = args.days

    if args.count < 1 or args.max_uses < 1:
        parser.error("--count and --max-uses must be at least 1")

    asyncio.run(create_invites(args.form_key, args.count, days, args.max_uses, args.note))


if __name__ == "__main__":
    main()
