#!/usr/bin/env python3
"""Emit SQL that grants (or revokes) a Jobly role on a Supabase user.

The API reads the role from ``auth.users.raw_app_meta_data``; nothing else
can elevate a caller, so this is how the first admin gets created.
"""

from __future__ import annotations

import argparse

ROLES = ("user", "admin")


def _quote_sql(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def _target_clause(user_id: str | None, email: str | None) -> str:
    if user_id:
        return f"id = {_quote_sql(user_id)}::uuid"
    if email:
        return f"lower(email) = lower({_quote_sql(email)})"
    raise ValueError("either user_id or email is required")


def render_sql(*, role: str | None, user_id: str | None, email: str | None) -> str:
    """Render an ``update auth.users`` statement; ``role=None`` revokes."""
    if role is None:
        assignment = "coalesce(raw_app_meta_data, '{}'::jsonb) - 'role'"
        action = "revoke Jobly role"
    elif role in ROLES:
        assignment = f"coalesce(raw_app_meta_data, '{{}}'::jsonb) || jsonb_build_object('role', {_quote_sql(role)})"
        action = f"grant Jobly role {role}"
    else:
        raise ValueError(f"unknown role: {role}")

    return "\n".join(
        [
            f"-- {action}",
            "-- Run in the Supabase SQL editor or another privileged Postgres session.",
            "update auth.users",
            f"set raw_app_meta_data = {assignment}",
            f"where {_target_clause(user_id, email)}",
            "returning id, email, raw_app_meta_data ->> 'role' as role;",
            "",
        ]
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL to grant or revoke a Jobly role on a Supabase user.")
    action_group = parser.add_mutually_exclusive_group()
    action_group.add_argument(
        "--role",
        choices=ROLES,
        default="admin",
        help="Role stored in auth.users.raw_app_meta_data.role",
    )
    action_group.add_argument("--revoke", action="store_true", help="Remove the stored role instead")
    identity_group = parser.add_mutually_exclusive_group(required=True)
    identity_group.add_argument("--user-id", help="Supabase auth.users id (UUID)")
    identity_group.add_argument("--email", help="Supabase auth.users email (case-insensitive)")
    args = parser.parse_args()

    role = None if args.revoke else args.role
    print(render_sql(role=role, user_id=args.user_id, email=args.email), end="")


if __name__ == "__main__":
    main()
