"""CLI for meeting-scheduler - calendar connection and booking.

Usage:
    meeting-scheduler status                     # Show configuration status
    meeting-scheduler auth login                 # Interactive OAuth login (PKCE)
    meeting-scheduler auth status                # Show token status
    meeting-scheduler auth refresh               # Refresh access token
    meeting-scheduler auth revoke                # Revoke token and disconnect
    meeting-scheduler slots --count 5            # List upcoming free slots
    meeting-scheduler book --name Ana --email ana@example.com
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import webbrowser

from meeting_scheduler.calendar import CalendarGateway, GatewayError
from meeting_scheduler.config import SchedulerSettings, ensure_data_dir, get_config_status
from meeting_scheduler.oauth import (
    JsonFileIntegrationStore,
    MemoryScratchStore,
    OAuthSessionError,
    OAuthSessionManager,
    ReauthRequiredError,
    parse_callback_url,
)
from meeting_scheduler.scheduling import (
    BusinessAvailability,
    Lead,
    MeetingOrchestrator,
    SchedulingError,
)


def _build_session(user_id: str) -> OAuthSessionManager:
    settings = SchedulerSettings.from_env()
    ensure_data_dir()
    return OAuthSessionManager(
        settings,
        JsonFileIntegrationStore(),
        MemoryScratchStore(),
        user_id=user_id,
    )


def cmd_status() -> int:
    """Show configuration status."""
    status = get_config_status()

    print("=" * 60)
    print("MEETING-SCHEDULER STATUS")
    print("=" * 60)
    print()
    print(f"Repository: {status['repo_root']}")
    print()
    print(f"  .env:              {'[x]' if status['env_file'] else '[ ]'}")
    print(f"  GOOGLE_CLIENT_ID:  {'[x]' if status['google']['client_id'] else '[ ]'}")
    print(f"  GOOGLE_CLIENT_SECRET: {'[x]' if status['google']['client_secret'] else '[ ]'}")
    print(f"  Redirect URI:      {status['google']['redirect_uri']}")
    print(f"  Time zone:         {status['time_zone']}")
    print(f"  Integrations file: {'[x]' if status['integrations_file'] else '[ ]'}")
    print()
    return 0


async def auth_login(user_id: str, no_browser: bool = False) -> int:
    """Run the PKCE authorization flow interactively."""
    async with _build_session(user_id) as session:
        request = await session.initiate_authorization()

        print("\nA browser window will open for Google consent.")
        print("After granting access, copy the redirect URL back here.\n")
        print(f"Authorization URL:\n{request.url}\n")

        if not no_browser:
            webbrowser.open(request.url)

        redirect_url = input("Paste redirect URL: ").strip()
        if not redirect_url:
            print("No URL provided; aborting.")
            return 1

        try:
            code, state = parse_callback_url(redirect_url)
            await session.complete_authorization(code, state)
        except OAuthSessionError as e:
            print(f"\nError: {e}")
            return 1

        print("\nCalendar connected successfully!")
        return await _print_token_info(session)


async def _print_token_info(session: OAuthSessionManager) -> int:
    info = await session.get_token_info()

    if info["status"] == "no_token":
        print("No token found - run 'meeting-scheduler auth login'")
        return 1

    print(f"Status     : {info['status']}")
    print(f"Scopes     : {', '.join(info.get('scopes', []))}")
    print(f"Expires in : {info.get('expires_in', 'unknown')}")
    print(f"Refreshed  : {info.get('last_refresh') or 'never'}")
    return 0


async def auth_status(user_id: str) -> int:
    """Show OAuth token status."""
    async with _build_session(user_id) as session:
        return await _print_token_info(session)


async def auth_refresh(user_id: str) -> int:
    """Refresh the access token."""
    print("=" * 60)
    print("REFRESHING OAUTH TOKEN")
    print("=" * 60)

    async with _build_session(user_id) as session:
        try:
            await session.refresh()
        except ReauthRequiredError as e:
            print(f"\nRefresh failed: {e}")
            print("Marking the calendar disconnected; run: meeting-scheduler auth login")
            await session.disconnect()
            return 1
        except OAuthSessionError as e:
            print(f"\nRefresh failed: {e}")
            return 1

        print("\nToken refreshed successfully!")
        return await _print_token_info(session)


async def auth_revoke(user_id: str) -> int:
    """Revoke the token and disconnect the calendar."""
    async with _build_session(user_id) as session:
        await session.disconnect()
    print("Token revoked and calendar disconnected")
    return 0


def _availability_from_args(args: argparse.Namespace) -> BusinessAvailability:
    return BusinessAvailability.from_day_names(
        args.days.split(","),
        duration_minutes=args.duration,
        buffer_minutes=args.buffer,
        window_start=args.start,
        window_end=args.end,
    )


async def cmd_slots(user_id: str, args: argparse.Namespace) -> int:
    """List upcoming free slots."""
    availability = _availability_from_args(args)

    async with _build_session(user_id) as session, CalendarGateway(session) as gateway:
        orchestrator = MeetingOrchestrator(gateway)
        slots = await orchestrator.get_available_slots(availability, args.count)

    if not slots:
        print("No available slots in the next 7 days")
        return 0

    for slot in slots:
        print(f"  {slot.start:%a %Y-%m-%d %H:%M} - {slot.end:%H:%M}")
    return 0


async def cmd_book(user_id: str, args: argparse.Namespace) -> int:
    """Book a meeting with a lead in the next free slot."""
    availability = _availability_from_args(args)
    lead = Lead(name=args.name, email=args.email, phone=args.phone)

    async with _build_session(user_id) as session, CalendarGateway(session) as gateway:
        orchestrator = MeetingOrchestrator(gateway)
        booking = await orchestrator.create_meeting_for_lead(lead, availability)

    print("Meeting booked")
    print(f"  When:  {booking.slot.start:%a %Y-%m-%d %H:%M} - {booking.slot.end:%H:%M}")
    print(f"  Event: {booking.external_event_id}")
    print(f"  Link:  {booking.link or 'n/a'}")
    return 0


def _add_availability_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--duration", type=int, default=30, help="Meeting length in minutes")
    parser.add_argument("--buffer", type=int, default=0, help="Minutes kept free around events")
    parser.add_argument("--start", default="09:00", help="Window start HH:MM (default: 09:00)")
    parser.add_argument("--end", default="18:00", help="Window end HH:MM (default: 18:00)")
    parser.add_argument(
        "--days",
        default="monday,tuesday,wednesday,thursday,friday",
        help="Comma-separated allowed days (default: monday..friday)",
    )


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="meeting-scheduler",
        description="Book meetings in free Google Calendar slots",
    )
    parser.add_argument("--user", default="default", help="Integration owner (default: default)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Command")

    # status command
    subparsers.add_parser("status", help="Show configuration status")

    # auth subcommand
    auth_parser = subparsers.add_parser("auth", help="Google Calendar OAuth management")
    auth_subparsers = auth_parser.add_subparsers(dest="auth_command", help="Command")

    login_parser = auth_subparsers.add_parser("login", help="Interactive OAuth login")
    login_parser.add_argument(
        "--no-browser",
        action="store_true",
        help="Don't open browser automatically",
    )
    auth_subparsers.add_parser("status", help="Show token status")
    auth_subparsers.add_parser("refresh", help="Refresh token")
    auth_subparsers.add_parser("revoke", help="Revoke token and disconnect")

    # slots command
    slots_parser = subparsers.add_parser("slots", help="List upcoming free slots")
    slots_parser.add_argument("--count", type=int, default=5, help="Number of slots (default: 5)")
    _add_availability_args(slots_parser)

    # book command
    book_parser = subparsers.add_parser("book", help="Book a meeting with a lead")
    book_parser.add_argument("--name", required=True, help="Lead name")
    book_parser.add_argument("--email", help="Lead email (added as attendee)")
    book_parser.add_argument("--phone", help="Lead phone")
    _add_availability_args(book_parser)

    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "status":
        return cmd_status()

    try:
        if args.command == "auth":
            if args.auth_command == "login":
                return asyncio.run(auth_login(args.user, args.no_browser))
            elif args.auth_command == "status":
                return asyncio.run(auth_status(args.user))
            elif args.auth_command == "refresh":
                return asyncio.run(auth_refresh(args.user))
            elif args.auth_command == "revoke":
                return asyncio.run(auth_revoke(args.user))
            else:
                auth_parser.print_help()
                return 0

        if args.command == "slots":
            return asyncio.run(cmd_slots(args.user, args))

        if args.command == "book":
            return asyncio.run(cmd_book(args.user, args))
    except (ValueError, OAuthSessionError, GatewayError, SchedulingError) as e:
        print(f"Error: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
