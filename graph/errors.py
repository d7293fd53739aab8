class OnboardingError(Exception):
    """Base class for every failure the onboarding pipeline reports."""

    @property
    def kind(self) -> str:
        return type(self).__name__


class ValidationError(OnboardingError):
    """A required intent field is missing or malformed."""

    def __init__(self, field: str, message: str = None):
        self.field = field
        super().__init__(message or f"Missing required field: {field}")


class ProvisioningError(OnboardingError):
    pass


class CrmUpdateError(OnboardingError):
    pass


class BillingError(OnboardingError):
    pass


class DocumentGenerationError(OnboardingError):
    pass


class CommunicationError(OnboardingError):
    pass
