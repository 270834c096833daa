# domain/errors.py
# Jerarquía de errores: el scheduler (no los helpers) decide si un fallo es fatal


class MailPollerError(Exception):
    """Base de todos los fallos que el poller sabe clasificar."""


class ConfigError(MailPollerError):
    """Fichero de config ausente, ilegible o incompleto. Fatal al arrancar."""


class MailConnectionError(MailPollerError):
    """Fallo de conexión, TLS o SELECT. Aborta el ciclo actual."""


class AuthenticationError(MailConnectionError):
    """El servidor rechazó las credenciales. Fatal para el proceso."""


class ProtocolError(MailPollerError):
    """Fallo en SEARCH/FETCH/STORE, o el FETCH no llegó a completarse."""


class CycleCancelled(MailPollerError):
    """Se pidió parar entre mensajes; no se marcó nada como leído."""
