"""Failures raised by action handlers; the message is forwarded to the operator as-is."""


class ActionError(Exception):
    """Base class for handler failures reported back as a result error."""


class ElementNotFoundError(ActionError):
    def __init__(self, selector):
        super().__init__(f"Element not found: {selector}")
        self.selector = selector


class WaitTimeoutError(ActionError):
    def __init__(self, selector):
        super().__init__(f"Timeout waiting for: {selector}")
        self.selector = selector


class UnknownActionError(ActionError):
    def __init__(self, tag):
        super().__init__(f"Unknown action: {tag}")
        self.tag = tag


class MissingFieldError(ActionError):
    def __init__(self, field):
        super().__init__(f"Missing required field: {field}")
        self.field = field


class EvaluationError(ActionError):
    """An expression threw inside the page."""


class EvaluationDisabledError(ActionError):
    def __init__(self):
        super().__init__("Evaluation is disabled")
