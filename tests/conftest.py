import os, sys

import pytest
from fastapi.testclient import TestClient

# Ensure the project root is importable (tools/ is not an installed package)
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from carsapp import main
from carsapp.dispatcher import OperationDispatcher
from gatewayclient import TransactionResult
from tools.gen_dev_credentials import write_app_config, write_org_credentials


class RecordingContract:
    """Contract stand-in that records every call instead of reaching a gateway."""

    def __init__(self):
        self.calls = []
        self.evaluate_result = b'{"ID":"asset1","color":"red","ownerID":"person1"}'
        self.error = None

    def _record(self, kind, name, args, timeout):
        self.calls.append((kind, name, list(args), timeout))
        if self.error is not None:
            raise self.error
        return f"tx{len(self.calls)}"

    def evaluate(self, name, args=(), timeout=None):
        tx_id = self._record("evaluate", name, args, timeout)
        return TransactionResult(transaction_id=tx_id, result=self.evaluate_result)

    def submit(self, name, args=(), timeout=None):
        tx_id = self._record("submit", name, args, timeout)
        return TransactionResult(transaction_id=tx_id, result=b"")


@pytest.fixture
def contract():
    return RecordingContract()


@pytest.fixture
def client(contract):
    main.app.dependency_overrides[main.get_dispatcher] = lambda: OperationDispatcher(contract)
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def app_config_path(tmp_path):
    return write_app_config(str(tmp_path))


@pytest.fixture
def org_credentials(tmp_path):
    return write_org_credentials(str(tmp_path), "org1")
