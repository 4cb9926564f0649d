# minbft

Building blocks for running replicas and clients of the MinBFT Byzantine
fault-tolerant consensus protocol.

The package provides:

- `minbft.usig` – the `UI` unique identifier (a monotonic counter plus a
  certificate) with its binary encoding, and the `USIG` interface.
- `minbft.sgxusig` – USIG identities and certificates (`make_id`, `parse_id`,
  `make_cert`, `parse_cert`), and verification of USIG signatures
  (`verify_signature`, `verify_ui`).
- `minbft.crypto` – ECDSA signature cipher, a public-key authentication
  scheme, and a USIG-based authentication scheme.
- `minbft.keystore` – a YAML key store: loading (`load_simple_key_store`) and
  generation of test-network keys (`generate_testnet_keys`).
- `minbft.authenticator` – an `Authenticator` that produces and checks
  message authentication tags for replica, client and USIG roles.
- `minbft.config` – the consensus configuration (`n`, `f`, checkpoint period,
  log size, timeouts, peer list).
- `minbft.ledger` – `SimpleLedger`, a sample request consumer that turns each
  delivered request into a hash-chained block.
- `minbft.connector` and `minbft.replicastub` – in-process connectors for
  wiring replicas and clients together without a network.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Example

```python
import io

from minbft.config import Config
from minbft.ledger import SimpleLedger

config = Config()
config.read_config(io.StringIO("""
protocol:
    "n": 3
    f: 1
    checkpointPeriod: 10
    logsize: 20
    timeout:
        request: 2s
        viewchange: 3s
"""), "yaml")
print(config.n(), config.f(), config.timeout_request())

ledger = SimpleLedger()
print(ledger.deliver(b"hello"))
print(len(ledger), ledger.state_digest().hex())
ledger.close()
```