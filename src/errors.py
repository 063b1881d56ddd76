# src/errors.py
# -----------------------------------------------------------------------------
# ОШИБКИ ЯДРА ЛЕДЖЕРА
# -----------------------------------------------------------------------------
#   • ValidationError   - плохой вход; отклоняем ДО обращения к хранилищу.
#   • NotFoundError     - расход / запись истории / группа отсутствует.
#   • InvalidStateError - запись есть, но из неё нельзя сделать то, что просят.
#   • ConflictError     - коммит мутации не прошёл; можно повторить целиком.
#   • LedgerTimeoutError - чтение упёрлось в таймаут; можно повторить.
#   • DependencyError   - упал побочный эффект ПОСЛЕ успешной мутации;
#                         только логируем, наружу не пробрасываем.
# -----------------------------------------------------------------------------

from __future__ import annotations


class LedgerError(Exception):
    code = "ledger_error"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LedgerError):
    code = "validation_error"


class NotFoundError(LedgerError):
    code = "not_found"


class InvalidStateError(LedgerError):
    code = "invalid_state"


class ConflictError(LedgerError):
    code = "conflict"
    retryable = True


class LedgerTimeoutError(LedgerError):
    code = "timeout"
    retryable = True


class DependencyError(LedgerError):
    code = "dependency_error"
