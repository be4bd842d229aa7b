from postboard.schemas import FieldError, UsernamePasswordInput

MIN_LENGTH = 3


def validate_password(password: str, field: str = "password") -> list[FieldError]:
    if len(password) < MIN_LENGTH:
        return [FieldError(field=field, message="length must be greater than 2")]
    return []


def validate_register(options: UsernamePasswordInput) -> list[FieldError]:
    """Return every problem with *options*; an empty list means valid."""
    errors: list[FieldError] = []

    if len(options.username) < MIN_LENGTH:
        errors.append(FieldError(field="username", message="length must be greater than 2"))
    if "@" in options.username:
        errors.append(FieldError(field="username", message="cannot include an @"))
    if "@" not in options.email:
        errors.append(FieldError(field="email", message="invalid email"))
    errors.extend(validate_password(options.password))

    return errors
