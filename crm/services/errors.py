"""
Excepciones de negocio del CRM.

Los adaptadores de almacenamiento traducen los errores del driver
a estas clases. La capa HTTP las convierte en códigos de estado.
"""


class LeadNotFoundError(Exception):
    """Se lanza cuando el lead (o documento) referenciado no existe."""

    def __init__(self, lead_id: str) -> None:
        self.lead_id = lead_id
        super().__init__(f"Lead no encontrado: {lead_id}")


class AuthorizationDeniedError(Exception):
    """El almacén rechaza la operación con las credenciales actuales."""


class StorageError(Exception):
    """Cualquier otro fallo del almacén."""


class LeadValidationError(Exception):
    """Los datos enviados no permiten la transición pedida."""
