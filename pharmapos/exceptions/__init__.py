"""Custom exceptions for the pharmacy POS application."""


class PosError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class BusinessLogicError(PosError):
    """Exception raised for business logic violations and invalid input."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class NotFoundError(PosError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


def _fmt_qty(value):
    return f"{int(value)}" if value % 1 == 0 else f"{value:.2f}".rstrip('0').rstrip('.')


class InsufficientStockError(BusinessLogicError):
    """Raised when an operation fails due to lack of stock."""
    def __init__(self, product_name, required, available):
        message = (
            f"Stock insuficiente para {product_name}: "
            f"se requieren {_fmt_qty(required)}, disponible {_fmt_qty(available)}"
        )
        super().__init__(message, status_code=409, payload={
            'product': product_name,
            'required': str(required),
            'available': str(available),
        })


class StockConflictError(PosError):
    """Raised when a stock write keeps losing the compare-and-swap race."""
    def __init__(self, product_id, attempts):
        super().__init__(
            f"El stock del producto {product_id} cambió durante la venta ({attempts} intentos)",
            409,
            {'product_id': product_id, 'attempts': attempts},
        )


class CheckoutError(PosError):
    """Raised when a mandatory checkout step fails; nothing was persisted."""
    def __init__(self, message, step=None):
        super().__init__(message, 500, {'step': step} if step else None)
        self.step = step


class UnauthorizedError(PosError):
    """Raised when credentials are missing or wrong."""
    def __init__(self, message="Unauthorized access"):
        super().__init__(message, 401)
