"""
Decibel Meter
Erros da sessão de amostragem

Taxonomia:
- PermissionDenied      -> sem permissão (à partida ou revogada a meio); terminal
- InitializationFailed  -> microfone ocupado / ausente / formato não suportado; terminal
- TransientReadError    -> uma leitura falhou; só log + contagem, o ciclo continua
- DeviceReadFailed      -> falhas de leitura repetidas (quando há limite configurado); terminal
- UnexpectedFailure     -> qualquer outra falha dentro do ciclo; terminal
- SessionBusy           -> pedido de start recusado (já existe sessão com o microfone)

Notas:
- A mensagem nunca fica vazia: o consumidor tem sempre de saber porque parou.
"""

from __future__ import annotations


class MeterError(Exception):
    kind: str = "MeterError"
    default_message: str = "Erro no medidor de decibéis"

    def __init__(self, message: str = ""):
        self.message = (message or "").strip() or self.default_message
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class PermissionDenied(MeterError):
    kind = "PermissionDenied"
    default_message = "Permissão do microfone negada"


class InitializationFailed(MeterError):
    kind = "InitializationFailed"
    default_message = "Falha ao inicializar o microfone"


class TransientReadError(MeterError):
    kind = "TransientReadError"
    default_message = "Erro ao ler áudio"


class DeviceReadFailed(MeterError):
    kind = "DeviceReadFailed"
    default_message = "O microfone deixou de devolver áudio"


class UnexpectedFailure(MeterError):
    kind = "UnexpectedFailure"
    default_message = "Erro inesperado na gravação"


class SessionBusy(MeterError):
    kind = "SessionBusy"
    default_message = "Já existe uma sessão a usar o microfone"


def describe(exc: BaseException) -> str:
    """Texto legível de uma exceção qualquer (nunca vazio)."""
    text = str(exc).strip()
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__
