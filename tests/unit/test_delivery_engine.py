from __future__ import annotations

import asyncio
from collections import Counter

import pytest
from app.notifications.contracts import InvalidPushTokenError, PushGatewayUnavailableError, TransientPushProviderError
from app.notifications.delivery import DeliveryAttemptEngine, DrainResult, build_pending_message
from app.notifications.pending_repo import MutationKind, RecordMutation


def _engine(push_sender, pending_repo, order_repo) -> DeliveryAttemptEngine:
  return DeliveryAttemptEngine(push_sender=push_sender, pending_repo=pending_repo, order_repo=order_repo)


def _committed(pending_repo) -> list[RecordMutation]:
  pending_repo.commit.assert_awaited_once()
  return list(pending_repo.commit.await_args.args[0])


@pytest.mark.anyio
async def test_drain_empty_queue_returns_zero_counts_without_writing(push_sender, pending_repo, order_repo):
  result = await _engine(push_sender, pending_repo, order_repo).drain()

  assert result == DrainResult(processed=0, successful=0, failed=0, skipped=0)
  pending_repo.list_eligible.assert_awaited_once_with(max_attempts=3, limit=100)
  pending_repo.commit.assert_not_awaited()
  push_sender.send.assert_not_called()


@pytest.mark.anyio
async def test_drain_deletes_every_successfully_sent_record(push_sender, pending_repo, order_repo, make_record):
  pending_repo.list_eligible.return_value = [make_record("a"), make_record("b", attempts=1), make_record("c", attempts=2)]

  result = await _engine(push_sender, pending_repo, order_repo).drain()

  assert result.to_dict() == {"processed": 3, "successful": 3, "failed": 0, "skipped": 0}
  assert _committed(pending_repo) == [RecordMutation.delete("a"), RecordMutation.delete("b"), RecordMutation.delete("c")]
  assert push_sender.send.call_count == 3


@pytest.mark.anyio
async def test_drain_drops_unroutable_records_without_counting_them_as_failures(push_sender, pending_repo, order_repo, make_record):
  pending_repo.list_eligible.return_value = [make_record("blank", token="   "), make_record("empty", token="")]

  result = await _engine(push_sender, pending_repo, order_repo).drain()

  assert result == DrainResult(processed=0, successful=0, failed=0, skipped=2)
  assert _committed(pending_repo) == [RecordMutation.delete("blank"), RecordMutation.delete("empty")]
  push_sender.send.assert_not_called()


@pytest.mark.anyio
async def test_retryable_failure_increments_attempts(push_sender, pending_repo, order_repo, make_record):
  push_sender.send.side_effect = TransientPushProviderError("unavailable")
  pending_repo.list_eligible.return_value = [make_record("a", attempts=0), make_record("b", attempts=1)]

  result = await _engine(push_sender, pending_repo, order_repo).drain()

  assert result.failed == 2
  assert result.successful == 0
  assert _committed(pending_repo) == [RecordMutation.update_attempts("a", 1), RecordMutation.update_attempts("b", 2)]


@pytest.mark.anyio
async def test_third_failed_attempt_deletes_record_instead_of_incrementing(push_sender, pending_repo, order_repo, make_record):
  push_sender.send.side_effect = TransientPushProviderError("quota exceeded")
  pending_repo.list_eligible.return_value = [make_record("last-chance", attempts=2)]

  result = await _engine(push_sender, pending_repo, order_repo).drain()

  assert result.failed == 1
  mutations = _committed(pending_repo)
  assert mutations == [RecordMutation.delete("last-chance")]
  assert all(mutation.kind is MutationKind.DELETE for mutation in mutations)


@pytest.mark.anyio
@pytest.mark.parametrize("attempts", [0, 1, 2])
async def test_invalid_token_deletes_record_regardless_of_attempts(push_sender, pending_repo, order_repo, make_record, attempts):
  push_sender.send.side_effect = InvalidPushTokenError("not registered")
  pending_repo.list_eligible.return_value = [make_record("stale", attempts=attempts)]

  result = await _engine(push_sender, pending_repo, order_repo).drain()

  assert result.failed == 1
  assert _committed(pending_repo) == [RecordMutation.delete("stale")]
  order_repo.clear_customer_token.assert_not_awaited()


@pytest.mark.anyio
async def test_invalid_token_clears_linked_order_field_after_commit(push_sender, pending_repo, order_repo, make_record):
  calls: list[str] = []
  push_sender.send.side_effect = InvalidPushTokenError("not registered")
  pending_repo.list_eligible.return_value = [make_record("stale", data={"orderId": "order-9"})]
  pending_repo.commit.side_effect = lambda mutations: calls.append("commit")
  order_repo.clear_customer_token.side_effect = lambda order_id, expected_token: calls.append(f"clear:{order_id}:{expected_token}")

  await _engine(push_sender, pending_repo, order_repo).drain()

  assert calls == ["commit", "clear:order-9:token-1"]


@pytest.mark.anyio
async def test_order_token_clear_failure_is_swallowed(push_sender, pending_repo, order_repo, make_record):
  push_sender.send.side_effect = InvalidPushTokenError("not registered")
  pending_repo.list_eligible.return_value = [make_record("stale", data={"orderId": "order-9"})]
  order_repo.clear_customer_token.side_effect = RuntimeError("firestore down")

  result = await _engine(push_sender, pending_repo, order_repo).drain()

  assert result.failed == 1
  assert _committed(pending_repo) == [RecordMutation.delete("stale")]


@pytest.mark.anyio
async def test_one_failing_record_does_not_abort_siblings(push_sender, pending_repo, order_repo, make_record):
  push_sender.send.side_effect = [RuntimeError("boom"), "message-id", InvalidPushTokenError("gone")]
  pending_repo.list_eligible.return_value = [make_record("a"), make_record("b"), make_record("c")]

  result = await _engine(push_sender, pending_repo, order_repo).drain()

  assert result == DrainResult(processed=3, successful=1, failed=2, skipped=0)
  assert _committed(pending_repo) == [RecordMutation.update_attempts("a", 1), RecordMutation.delete("b"), RecordMutation.delete("c")]


@pytest.mark.anyio
async def test_unavailable_gateway_propagates_without_writing(push_sender, pending_repo, order_repo, make_record):
  push_sender.send.side_effect = PushGatewayUnavailableError("Firebase Admin not initialized")
  pending_repo.list_eligible.return_value = [make_record("a")]

  with pytest.raises(PushGatewayUnavailableError):
    await _engine(push_sender, pending_repo, order_repo).drain()

  pending_repo.commit.assert_not_awaited()


@pytest.mark.anyio
async def test_store_query_failure_propagates(push_sender, pending_repo, order_repo):
  pending_repo.list_eligible.side_effect = RuntimeError("store unreachable")

  with pytest.raises(RuntimeError, match="store unreachable"):
    await _engine(push_sender, pending_repo, order_repo).drain()


@pytest.mark.anyio
async def test_drain_arguments_override_configured_budget(push_sender, pending_repo, order_repo, make_record):
  push_sender.send.side_effect = TransientPushProviderError("unavailable")
  pending_repo.list_eligible.return_value = [make_record("a", attempts=3)]

  await _engine(push_sender, pending_repo, order_repo).drain(max_batch=10, max_attempts=5)

  pending_repo.list_eligible.assert_awaited_once_with(max_attempts=5, limit=10)
  assert _committed(pending_repo) == [RecordMutation.update_attempts("a", 4)]


def test_pending_message_defaults_type_to_general(make_record):
  message = build_pending_message(make_record(data={}))
  assert message.data == {"type": "general"}
  assert message.token == "token-1"

  typed = build_pending_message(make_record(data={"type": "promo", "orderId": "o1"}))
  assert typed.data == {"type": "promo", "orderId": "o1"}


@pytest.mark.anyio
async def test_dead_driver_token_only_clears_order_holding_that_token(push_sender, pending_repo, order_repo, make_record):
  push_sender.send.side_effect = InvalidPushTokenError("not registered")
  pending_repo.list_eligible.return_value = [make_record("driver-copy", token="driver-token", data={"type": "new_order", "orderId": "order-1"})]
  order_repo.clear_customer_token.return_value = False

  result = await _engine(push_sender, pending_repo, order_repo).drain()

  assert result.failed == 1
  order_repo.clear_customer_token.assert_awaited_once_with(order_id="order-1", expected_token="driver-token")
  assert _committed(pending_repo) == [RecordMutation.delete("driver-copy")]


@pytest.mark.anyio
@pytest.mark.parametrize("max_batch", [0, 501, 600])
async def test_batch_limit_outside_single_write_batch_is_rejected_before_sending(push_sender, pending_repo, order_repo, max_batch):
  with pytest.raises(ValueError, match="max_batch"):
    await _engine(push_sender, pending_repo, order_repo).drain(max_batch=max_batch)

  pending_repo.list_eligible.assert_not_awaited()
  push_sender.send.assert_not_called()


@pytest.mark.anyio
async def test_zero_attempt_budget_is_rejected(push_sender, pending_repo, order_repo):
  with pytest.raises(ValueError, match="max_attempts"):
    await _engine(push_sender, pending_repo, order_repo).drain(max_attempts=0)

  pending_repo.list_eligible.assert_not_awaited()


@pytest.mark.anyio
async def test_full_write_batch_limit_is_accepted(push_sender, pending_repo, order_repo):
  await _engine(push_sender, pending_repo, order_repo).drain(max_batch=500)

  pending_repo.list_eligible.assert_awaited_once_with(max_attempts=3, limit=500)


class _InMemoryPendingStore:
  """Shared store whose reads wait for every concurrent drain to arrive before returning."""

  def __init__(self, records, readers: int) -> None:
    self.records = {record.id: record for record in records}
    self._barrier_count = readers
    self._arrived = 0
    self._all_arrived = asyncio.Event()

  async def list_eligible(self, *, max_attempts: int, limit: int):
    snapshot = [record for record in self.records.values() if record.attempts < max_attempts][:limit]
    self._arrived += 1
    if self._arrived >= self._barrier_count:
      self._all_arrived.set()
    await self._all_arrived.wait()
    return snapshot

  async def commit(self, mutations) -> None:
    for mutation in mutations:
      if mutation.kind is MutationKind.DELETE:
        self.records.pop(mutation.notification_id, None)


@pytest.mark.anyio
async def test_concurrent_drains_deliver_every_record_at_least_once(push_sender, order_repo, make_record):
  records = [make_record(f"n{index}", token=f"token-{index}") for index in range(5)]
  store = _InMemoryPendingStore(records, readers=2)
  engine = DeliveryAttemptEngine(push_sender=push_sender, pending_repo=store, order_repo=order_repo)

  results = await asyncio.gather(engine.drain(), engine.drain())

  sent_tokens = Counter(call.args[0].token for call in push_sender.send.call_args_list)
  assert set(sent_tokens) == {record.fcm_token for record in records}
  assert all(count >= 1 for count in sent_tokens.values())
  assert sum(result.successful for result in results) >= len(records)
  assert store.records == {}
