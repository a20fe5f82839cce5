"""Email bodies sent by the account lifecycle workflows (positional ``str.format`` templates)."""

# full name, callback, email, token
ACCOUNT_EMAIL_ACTIVATION = (
    "Hello {0},\n\n"
    "Welcome to TryLog. Confirm your email address to activate your account:\n\n"
    "{1}?email={2}&code={3}\n\n"
    "If you did not create this account you can ignore this message.\n"
)

# full name, callback, email, token
ACCOUNT_REACTIVATION = (
    "Hello {0},\n\n"
    "We received a request to reactivate your TryLog account. "
    "Follow the link below to restore access:\n\n"
    "{1}?email={2}&code={3}\n\n"
    "If you did not ask for this you can ignore this message.\n"
)

# callback, account id, token, account creation time, email
PASSWORD_RESET_CONFIRMATION = (
    "A password reset was requested for the TryLog account {4} "
    "(member since {3}).\n\n"
    "Confirm the reset to receive a new password:\n\n"
    "{0}?id={1}&code={2}\n\n"
    "Your current password keeps working until the reset is confirmed.\n"
)

# email, new password, account creation time
PASSWORD_CHANGE_CONFIRMATION = (
    "The password of the TryLog account {0} (member since {2}) was reset.\n\n"
    "Your new password is: {1}\n\n"
    "Sign in and change it as soon as possible.\n"
)


def render(template: str, *values: object) -> str:
    return template.format(*values)
