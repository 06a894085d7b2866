"""
Role hierarchy for the admin portals.

Levels, highest first: super-admin > platform-admin > company-admin > hr-admin > employee.
"""
SUPER_ADMIN = "super-admin"
PLATFORM_ADMIN = "platform-admin"
COMPANY_ADMIN = "company-admin"
HR_ADMIN = "hr-admin"
EMPLOYEE = "employee"

ROLE_HIERARCHY: dict[str, int] = {
    SUPER_ADMIN: 4,
    PLATFORM_ADMIN: 3,
    COMPANY_ADMIN: 2,
    HR_ADMIN: 1,
    EMPLOYEE: 0,
}

ROLE_DISPLAY_NAMES: dict[str, str] = {
    SUPER_ADMIN: "Super Admin",
    PLATFORM_ADMIN: "Platform Admin",
    COMPANY_ADMIN: "Company Admin",
    HR_ADMIN: "HR Admin",
    EMPLOYEE: "Employee",
}

ROLE_DESCRIPTIONS: dict[str, str] = {
    SUPER_ADMIN: "Full system access across all companies",
    PLATFORM_ADMIN: "Manages companies and platform-wide settings",
    COMPANY_ADMIN: "Manages a single company, its settings and administrators",
    HR_ADMIN: "Manages employees, benefit plans and FAQs for a company",
    EMPLOYEE: "Uses the benefits assistant and views own benefits",
}

_LEGACY_ROLES: dict[str, str] = {
    "super_admin": SUPER_ADMIN,
    "super admin": SUPER_ADMIN,
    "superadmin": SUPER_ADMIN,
    "platform_admin": PLATFORM_ADMIN,
    "platform admin": PLATFORM_ADMIN,
    "company_admin": COMPANY_ADMIN,
    "company admin": COMPANY_ADMIN,
    "hr_admin": HR_ADMIN,
    "hr admin": HR_ADMIN,
    "hradmin": HR_ADMIN,
    "employee": EMPLOYEE,
    "user": EMPLOYEE,
}


def is_valid_role(role: str | None) -> bool:
    return role in ROLE_HIERARCHY


def role_level(role: str | None) -> int:
    """-1 for roles outside the hierarchy."""
    return ROLE_HIERARCHY.get(role or "", -1)


def has_role_access(user_role: str | None, required_role: str) -> bool:
    """True when user_role is at or above required_role. Unknown required roles are unreachable."""
    return role_level(user_role) >= ROLE_HIERARCHY.get(required_role, 999)


def get_managed_roles(role: str | None) -> list[str]:
    """Roles strictly below the given one, highest first."""
    level = role_level(role)
    return [r for r, lv in ROLE_HIERARCHY.items() if lv < level]


def normalize_legacy_role(role: str | None) -> str | None:
    """Map legacy spellings (super_admin, 'hr admin', user ...) to hierarchy roles; None if unknown."""
    if not role:
        return None
    key = role.strip().lower()
    if key in ROLE_HIERARCHY:
        return key
    return _LEGACY_ROLES.get(key)


def is_platform_role(role: str | None) -> bool:
    """Platform roles are not pinned to a single company."""
    return has_role_access(role, PLATFORM_ADMIN)
