"""API routes module - registers all route blueprints.

Route Organization:
- profiles.py: Own profile, user directory, roles (7 routes)
- posts.py: Feed, posts, likes, comments, featured slot (7 routes)
- follows.py: Follow toggling and stats (3 routes)
- notifications.py: Inbox and read state (3 routes)
- chats.py: Chats, membership, messages, invites (14 routes)
- economy.py: Player stats, wallet, roulette (6 routes)
- files.py: Uploaded image serving (1 route)
- system.py: Health checks (2 routes)
"""

from apiflask import APIFlask

from plaza.api.routes import (
    chats,
    economy,
    files,
    follows,
    notifications,
    posts,
    profiles,
    system,
)


def register_blueprints(app: APIFlask) -> None:
    """Register all route blueprints with the Flask app.

    Args:
        app: APIFlask application instance
    """
    app.register_blueprint(system.api)
    app.register_blueprint(profiles.api)
    app.register_blueprint(posts.api)
    app.register_blueprint(follows.api)
    app.register_blueprint(notifications.api)
    app.register_blueprint(chats.api)
    app.register_blueprint(economy.api)
    app.register_blueprint(files.api)


__all__ = [
    "register_blueprints",
]
