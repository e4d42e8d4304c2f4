"""Random password generation."""

import secrets

from . import config


def generate_password(length: int = config.DEFAULT_PASSWORD_LENGTH, use_upper: bool = True,
                      use_numbers: bool = True, use_symbols: bool = True) -> str:
    """
    Generate a password from lowercase letters plus the enabled classes.

    Every enabled class appears at least once when length allows it.

    Raises:
        ValueError: If length is below 1
    """
    if length < 1:
        raise ValueError("Password length must be at least 1")

    classes = [config.PASSWORD_LOWER_CHARS]
    if use_upper:
        classes.append(config.PASSWORD_UPPER_CHARS)
    if use_numbers:
        classes.append(config.PASSWORD_NUMBER_CHARS)
    if use_symbols:
        classes.append(config.PASSWORD_SYMBOL_CHARS)
    pool = "".join(classes)

    chars = [secrets.choice(group) for group in classes[:length]]
    chars += [secrets.choice(pool) for _ in range(length - len(chars))]

    # Guaranteed characters must not sit at fixed positions
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)
