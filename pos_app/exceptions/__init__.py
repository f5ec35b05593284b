"""Custom exceptions for the POS application."""

class PosError(Exception):
    """Base exception for all application errors."""
    code = None

    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        if self.code:
            rv['code'] = self.code
        return rv

class BusinessLogicError(PosError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)

class ValidationError(BusinessLogicError):
    """Raised when the caller sent a malformed or incomplete request."""
    code = 'validation_error'

class NotFoundError(PosError):
    """Exception raised when a resource is not found."""
    code = 'not_found'

    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

def _fmt_qty(value):
    return f"{int(value)}" if value % 1 == 0 else f"{value:.2f}".rstrip('0').rstrip('.')

class InsufficientStockError(BusinessLogicError):
    """Raised when an operation fails due to lack of stock."""
    code = 'stock_insufficient'

    def __init__(self, product_name, required, available):
        message = (
            f"Stock insuficiente para {product_name}: "
            f"se requieren {_fmt_qty(required)}, disponible {_fmt_qty(available)}"
        )
        payload = {
            'product_name': product_name,
            'required': float(required),
            'available': float(available),
        }
        super().__init__(message, status_code=409, payload=payload)
        self.product_name = product_name

class ProductUnavailableError(BusinessLogicError):
    """Raised when a cart references a product that is missing or inactive."""
    code = 'product_unavailable'

    def __init__(self, product_name):
        message = f'El producto "{product_name}" no está disponible'
        super().__init__(message, status_code=409, payload={'product_name': product_name})
        self.product_name = product_name
