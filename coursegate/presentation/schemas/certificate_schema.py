from .base_schema import CamelModel


class CertificateRetryResponse(CamelModel):
    issued: int
