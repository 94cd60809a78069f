"""Model definitions shared by the sqla-batchloads examples."""

from __future__ import annotations

from sqla_batchloads import (
    belongs_to,
    define_model,
    has_many,
    has_many_through,
    has_one,
)


League = define_model(
    "League",
    "leagues",
    relations={
        "posts": has_many("posts", foreign_key="league_id"),
        "country": belongs_to("countries", foreign_key="country_id"),
        "settings": has_one("league_settings", foreign_key="league_id"),
        "teams": has_many_through(
            "teams",
            through="league_teams",
            foreign_key="league_id",
            through_foreign_key="team_id",
        ),
    },
)

Post = define_model(
    "Post",
    "posts",
    relations={
        "author": belongs_to("users", foreign_key="author_id"),
        "comments": has_many("comments", foreign_key="post_id"),
    },
)

User = define_model(
    "User",
    "users",
    relations={"profile": has_one("profiles", foreign_key="user_id")},
)

Comment = define_model(
    "Comment",
    "comments",
    relations={"author": belongs_to("users", foreign_key="author_id")},
)
