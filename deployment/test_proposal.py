#!/usr/bin/env python3
"""
Tests for governance proposals
"""

import json
import os

import pytest

from deployment.address_book import AddressBook
from deployment import contracts as ct
from deployment.errors import ConfigError, MissingDependency
from deployment.proposal import ZERO_PREDECESSOR, TimelockProposer, batch_salt
from deployment.router import ChangeBatch, Operation
from deployment.testing import decode_fake_call, fake_chains

TARGET = "0x0000000000000000000000000000000000000007"


def batch(selector, count):
    return ChangeBatch(selector, [Operation(TARGET, bytes([i]), 0, f"op {i}") for i in range(count)])


class TestTimelockProposer:
    def setup_method(self):
        self.chains = fake_chains(1, 2)
        self.book = AddressBook()
        self.timelocks = {}
        for selector, chain in self.chains.items():
            self.timelocks[selector] = chain.add_contract(ct.TIMELOCK_V1_0)
            self.book.save(selector, self.timelocks[selector], ct.TIMELOCK_V1_0)

    def test_propose(self, tmp_path):
        proposer = TimelockProposer(self.chains, self.book, min_delay=3600, output_dir=str(tmp_path))
        result = proposer.propose([batch(1, 3), batch(2, 1)], "wire chains")

        assert result.transaction_counts == {1: 3, 2: 1}
        assert os.path.basename(result.path) == f"proposal-{result.proposal_id}.json"
        with open(result.path) as f:
            data = json.load(f)
        assert data["id"] == result.proposal_id
        assert data["description"] == "wire chains"
        assert [c["chainSelector"] for c in data["chains"]] == [1, 2]
        assert len(data["chains"][0]["operations"]) == 3

    def test_schedule_batch_payload(self):
        proposer = TimelockProposer(self.chains, self.book, min_delay=60, output_dir=None)
        result = proposer.propose([batch(1, 2)], "payload")
        call = result.proposal.calls[0]
        assert call.timelock == self.timelocks[1]

        method, args = decode_fake_call(call.data)
        assert method == "scheduleBatch"
        targets, values, payloads, predecessor, salt, delay = args
        assert targets == [TARGET, TARGET]
        assert values == [0, 0]
        assert payloads == [b"\x00", b"\x01"]
        assert predecessor == ZERO_PREDECESSOR
        assert salt == batch_salt(batch(1, 2), "payload")
        assert delay == 60
        assert result.path is None

    def test_empty(self, tmp_path):
        proposer = TimelockProposer(self.chains, self.book, output_dir=str(tmp_path))
        assert proposer.propose([], "nothing") is None
        assert proposer.propose([ChangeBatch(1)], "nothing") is None
        assert os.listdir(tmp_path) == []

    def test_missing_timelock_writes_nothing(self, tmp_path):
        chains = fake_chains(1, 2, 3)
        proposer = TimelockProposer(chains, self.book, output_dir=str(tmp_path))
        with pytest.raises(MissingDependency) as exc_info:
            proposer.propose([batch(1, 1), batch(3, 1)], "partial")
        assert exc_info.value.chain_selector == 3
        assert os.listdir(tmp_path) == []

    def test_unknown_chain(self, tmp_path):
        proposer = TimelockProposer(self.chains, self.book, output_dir=str(tmp_path))
        with pytest.raises(ConfigError):
            proposer.propose([batch(9, 1)], "unknown")

    def test_salt_is_deterministic(self):
        assert batch_salt(batch(1, 2), "x") == batch_salt(batch(1, 2), "x")
        assert batch_salt(batch(1, 2), "x") != batch_salt(batch(1, 2), "y")
        assert batch_salt(batch(1, 2), "x") != batch_salt(batch(2, 2), "x")

    def test_id_ignores_creation_time(self):
        proposer = TimelockProposer(self.chains, self.book, min_delay=60, output_dir=None)
        first = proposer.propose([batch(1, 2)], "same content").proposal
        second = proposer.propose([batch(1, 2)], "same content").proposal
        first.created_at = "2026-01-01T00:00:00+00:00"
        second.created_at = "2026-06-01T12:30:00+00:00"

        assert first.proposal_id == second.proposal_id
        assert first.to_dict()["createdAt"] == "2026-01-01T00:00:00+00:00"
        assert first.to_dict()["id"] == first.proposal_id
        assert proposer.propose([batch(1, 2)], "other content").proposal_id != first.proposal_id
