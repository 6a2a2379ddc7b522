import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from models import AuditLog, AuditStatus, SettingCategory, UserRole
from schemas import LoginIn, PasswordChangeIn, ProfileIn, RegisterIn
from services import (
    AuthenticationError,
    AuthService,
    CategoryService,
    ConflictError,
    PermissionDeniedError,
    UserSettingService,
)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def register(session, email: str = "ana@example.com", password: str = "s3cret-pass"):
    return AuthService(session).register(
        RegisterIn(name="Ana Souza", email=email, password=password)
    )


def test_first_user_is_admin_and_gets_default_categories() -> None:
    session = make_session()

    first = register(session)
    second = register(session, "bruno@example.com")

    assert first.role == UserRole.admin
    assert second.role == UserRole.user
    assert first.password_hash != "s3cret-pass"
    assert len(CategoryService(session, second.id).list_all()) == 12


def test_duplicate_email_is_rejected_case_insensitively() -> None:
    session = make_session()
    register(session)

    with pytest.raises(ConflictError):
        register(session, "ANA@Example.com")


def test_login_issues_token_bound_to_session() -> None:
    session = make_session()
    user = register(session)
    auth = AuthService(session)

    token, ctx = auth.login(
        LoginIn(email="Ana@example.com", password="s3cret-pass"),
        user_agent="Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X)",
    )

    assert ctx.user.id == user.id
    assert ctx.session.device_type == "mobile"
    assert auth.authenticate(token).session.id == ctx.session.id
    assert [s.id for s in auth.list_sessions(user.id)] == [ctx.session.id]

    auth.logout(ctx)
    with pytest.raises(AuthenticationError):
        auth.authenticate(token)
    with pytest.raises(AuthenticationError):
        auth.authenticate("not-a-token")


def test_failed_logins_lock_the_account() -> None:
    session = make_session()
    user = register(session)
    auth = AuthService(session)

    for _ in range(5):
        with pytest.raises(AuthenticationError):
            auth.login(LoginIn(email="ana@example.com", password="wrong-pass"))

    assert user.locked_until is not None
    assert user.failed_login_attempts == 0
    with pytest.raises(PermissionDeniedError):
        auth.login(LoginIn(email="ana@example.com", password="s3cret-pass"))

    failures = session.query(AuditLog).filter(AuditLog.status == AuditStatus.failure).count()
    assert failures == 5


def test_unknown_email_and_inactive_user() -> None:
    session = make_session()
    user = register(session)
    auth = AuthService(session)

    with pytest.raises(AuthenticationError):
        auth.login(LoginIn(email="nobody@example.com", password="s3cret-pass"))

    user.is_active = False
    session.commit()
    with pytest.raises(PermissionDeniedError):
        auth.login(LoginIn(email="ana@example.com", password="s3cret-pass"))


def test_password_change_revokes_other_sessions() -> None:
    session = make_session()
    register(session)
    auth = AuthService(session)
    token_a, ctx_a = auth.login(LoginIn(email="ana@example.com", password="s3cret-pass"))
    token_b, _ = auth.login(LoginIn(email="ana@example.com", password="s3cret-pass"))

    with pytest.raises(ValueError):
        auth.change_password(
            ctx_a, PasswordChangeIn(current_password="nope", new_password="an0ther-pass")
        )
    with pytest.raises(ValueError):
        auth.change_password(
            ctx_a,
            PasswordChangeIn(current_password="s3cret-pass", new_password="s3cret-pass"),
        )

    revoked = auth.change_password(
        ctx_a, PasswordChangeIn(current_password="s3cret-pass", new_password="an0ther-pass")
    )

    assert revoked == 1
    assert auth.authenticate(token_a).user.email == "ana@example.com"
    with pytest.raises(AuthenticationError):
        auth.authenticate(token_b)
    auth.login(LoginIn(email="ana@example.com", password="an0ther-pass"))


def test_profile_update_and_session_revocation() -> None:
    session = make_session()
    user = register(session)
    register(session, "bruno@example.com")
    auth = AuthService(session)
    _, ctx = auth.login(LoginIn(email="ana@example.com", password="s3cret-pass"))

    with pytest.raises(ConflictError):
        auth.update_profile(user, ProfileIn(email="bruno@example.com"))
    updated = auth.update_profile(user, ProfileIn(name="Ana S.", language="en"))
    assert updated.name == "Ana S."
    assert updated.language == "en"

    auth.revoke_session(user.id, ctx.session.id)
    assert auth.list_sessions(user.id) == []


def test_settings_merge_over_defaults() -> None:
    session = make_session()
    user = register(session)
    settings = UserSettingService(session, user.id)

    assert settings.get(SettingCategory.appearance)["theme"] == "light"

    updated = settings.update(SettingCategory.appearance, {"theme": "dark"})
    assert updated["theme"] == "dark"
    assert updated["compact_mode"] is False
    assert settings.get_all()["appearance"]["theme"] == "dark"

    with pytest.raises(ValueError):
        settings.update(SettingCategory.appearance, {"font": "serif"})

    assert settings.reset(SettingCategory.appearance)["theme"] == "light"
    assert settings.get(SettingCategory.appearance)["theme"] == "light"
