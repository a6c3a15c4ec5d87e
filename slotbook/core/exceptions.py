"""Custom application exceptions."""


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class UnauthorizedException(AppException):
    """Unauthorized access exception."""

    def __init__(self, message: str = "Unauthorized"):
        """Initialize with 401 status code."""
        super().__init__(message, status_code=401)


class ConflictException(AppException):
    """Conflict exception."""

    def __init__(self, message: str = "Conflict"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation error"):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422)


class LockTimeoutException(AppException):
    """A booking lock could not be acquired in time."""

    def __init__(self, key: str):
        """Initialize with 503 status code."""
        self.key = key
        super().__init__(f"Timed out waiting for lock '{key}'", status_code=503)


# Not found


class SlotNotFoundException(NotFoundException):
    """Slot does not exist."""

    def __init__(self, slot_id: str):
        self.slot_id = slot_id
        super().__init__(f"Slot '{slot_id}' not found")


class AppointmentNotFoundException(NotFoundException):
    """Appointment does not exist."""

    def __init__(self, appointment_id: str):
        self.appointment_id = appointment_id
        super().__init__(f"Appointment '{appointment_id}' not found")


# Conflicts


class SlotOverlapException(ConflictException):
    """Requested interval intersects an existing slot of the same provider."""

    def __init__(self, message: str = "Slot overlaps with an existing slot"):
        super().__init__(message)


class SlotUnavailableException(ConflictException):
    """Slot cannot be booked because it is already taken."""

    def __init__(self, slot_id: str):
        self.slot_id = slot_id
        super().__init__(f"Slot '{slot_id}' is not available")


class SlotAlreadyBookedException(ConflictException):
    """Slot.book() called on a booked slot."""

    def __init__(self, message: str = "Slot is already booked"):
        super().__init__(message)


class SlotAlreadyAvailableException(ConflictException):
    """Slot.release() called on an available slot."""

    def __init__(self, message: str = "Slot is already available"):
        super().__init__(message)


class AppointmentAlreadyCancelledException(ConflictException):
    """Appointment.cancel() called on a cancelled appointment."""

    def __init__(self, message: str = "Appointment is already cancelled"):
        super().__init__(message)


class ConcurrentUpdateException(ConflictException):
    """
    A version-checked write matched no row.

    Raised by repositories when the stored row changed since it was read,
    or when a storage constraint rejected a write made by a concurrent
    transaction.
    """

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} '{entity_id}' was modified concurrently")


# Validation


class InvalidSlotIntervalException(ValidationException):
    """Slot interval is empty, inverted or not timezone-aware."""

    def __init__(self, message: str = "Slot end time must be after start time"):
        super().__init__(message)
