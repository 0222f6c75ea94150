"""
SyncEngine 集成测试 (SQLite 源 + 模拟 Elasticsearch)
"""

import asyncio
import unittest
from unittest import IsolatedAsyncioTestCase
from unittest.mock import AsyncMock

from conftest import (
    BASE_TS,
    FakeSearchClient,
    MemoryCursorStore,
    RecordingListener,
    create_memory_source,
)

from es_stacker.core.engine import SKIP_CURSOR_NOT_CHANGED, SKIP_NOT_FOUND_ITEMS, SyncEngine
from es_stacker.exceptions import CursorStoreError
from es_stacker.models.cursor import KeyCursor, TimestampCursor
from es_stacker.models.document import BulkOutcome
from es_stacker.models.status import SyncState
from es_stacker.readers.key_reader import KeyReader
from es_stacker.readers.timestamp_reader import TimestampReader
from es_stacker.targets.elasticsearch_writer import ElasticsearchWriter
from es_stacker.utils.converters import to_version


class TestSyncEngine(IsolatedAsyncioTestCase):
    """同步引擎测试"""

    def _engine(self, rows, strategy="timestamp", chunk_limit=1000, store=None, client=None):
        self.conn, table = create_memory_source(rows)
        reader_cls = TimestampReader if strategy == "timestamp" else KeyReader
        self.reader = reader_cls(table, "posts", chunk_limit=chunk_limit)
        self.client = client or FakeSearchClient()
        self.store = store or MemoryCursorStore()
        self.listener = RecordingListener()
        self.engine = SyncEngine(
            agent_id="agent",
            reader=self.reader,
            writer=ElasticsearchWriter(self.client),
            cursor_store=self.store,
            chunk_delay_ms=0,
            listeners=[self.listener],
        )
        self.addAsyncCleanup(self.engine.close)
        return self.engine

    async def test_end_to_end_single_chunk(self):
        """测试 10 行记录一个分块完成，更新过的行使用更新时间版本"""
        t = BASE_TS
        rows = [(pk, t + pk, None, None) for pk in range(1, 11)]
        rows[6] = (7, t + 7, t + 20, None)
        engine = self._engine(rows)

        chunk = await engine.exec_chunk()

        self.assertEqual(len(chunk), 10)
        positions = [(item.cursor.timestamp, item.cursor.id) for item in chunk.items]
        self.assertEqual(positions, sorted(positions))
        doc7 = next(item for item in chunk.items if item.id == "id_7")
        self.assertEqual(doc7.version, to_version(t + 20))
        self.assertEqual(chunk.items[-1].id, "id_7")

        self.assertEqual(
            self.store.data["agent"],
            {"timestamp": chunk.items[-1].cursor.timestamp, "id": 7}
        )
        self.assertEqual(engine.cursor, TimestampCursor(timestamp=t + 20, id=7))
        self.assertEqual(len(self.client.documents), 10)

    async def test_idempotent_skip(self):
        """测试源端无变化时跳过，不发送请求也不写游标"""
        engine = self._engine([(1, BASE_TS, None, None)])

        await engine.exec_chunk()
        calls = len(self.client.bulk_calls)
        writes = len(self.store.set_calls)

        self.assertIsNone(await engine.exec_chunk())
        self.assertEqual(len(self.client.bulk_calls), calls)
        self.assertEqual(len(self.store.set_calls), writes)
        self.assertEqual(self.listener.of("skipped_chunk"), [SKIP_CURSOR_NOT_CHANGED])
        self.assertEqual(engine.status.skipped_chunks, 1)

    async def test_empty_source_skips(self):
        """测试空表时游标不变而跳过"""
        engine = self._engine([])

        self.assertIsNone(await engine.exec_chunk())
        self.assertEqual(self.listener.of("skipped_chunk"), [SKIP_CURSOR_NOT_CHANGED])
        self.assertEqual(self.store.set_calls, [])

    async def test_not_found_items_skip(self):
        """测试最新位置变化但窗口内没有记录时跳过"""
        engine = self._engine([(1, BASE_TS, None, None)])
        self.reader.get_items = AsyncMock(return_value=[])

        self.assertIsNone(await engine.exec_chunk())
        self.assertEqual(self.listener.of("skipped_chunk"), [SKIP_NOT_FOUND_ITEMS])

    async def test_chunk_limit_covers_all_rows_once(self):
        """测试 2500 行、分块 1000 时三次迭代恰好覆盖全部记录"""
        for strategy in ("timestamp", "key"):
            with self.subTest(strategy=strategy):
                rows = [(pk, BASE_TS + pk // 7, None, None) for pk in range(1, 2501)]
                engine = self._engine(rows, strategy=strategy, chunk_limit=1000)

                seen = []
                cursors = []
                for _ in range(3):
                    chunk = await engine.exec_chunk()
                    seen.extend(item.id for item in chunk.items)
                    cursors.append(engine.cursor)

                self.assertEqual([len(c) for c in self.listener.of("executed_chunk")],
                                 [1000, 1000, 500])
                self.assertEqual(len(seen), 2500)
                self.assertEqual(set(seen), {f"id_{pk}" for pk in range(1, 2501)})
                self.assertEqual(len(self.store.set_calls), 3)
                if strategy == "timestamp":
                    positions = [(c.timestamp, c.id) for c in cursors]
                else:
                    positions = [c.id for c in cursors]
                self.assertEqual(positions, sorted(set(positions)))
                self.assertEqual(len(positions), 3)
                self.assertIsNone(await engine.exec_chunk())

    async def test_resume_from_stored_cursor(self):
        """测试从已持久化的游标继续"""
        store = MemoryCursorStore({"agent": {"id": 3}})
        engine = self._engine(
            [(pk, BASE_TS + pk, None, None) for pk in range(1, 6)],
            strategy="key",
            store=store,
        )

        chunk = await engine.exec_chunk()

        self.assertEqual([item.id for item in chunk.items], ["id_4", "id_5"])
        self.assertEqual(self.listener.of("startup"), [KeyCursor(id=3)])
        self.assertEqual(store.data["agent"], {"id": 5})

    async def test_failed_write_does_not_advance(self):
        """测试写入失败时游标不推进，下次迭代重试同一批次"""
        client = FakeSearchClient()
        client.hard_errors["id_2"] = (400, "mapper_parsing_exception")
        engine = self._engine(
            [(pk, BASE_TS + pk, None, None) for pk in range(1, 4)], client=client
        )

        chunk = await engine.exec_chunk()

        self.assertEqual(chunk.outcome, BulkOutcome.FAILED)
        self.assertEqual(engine.cursor, TimestampCursor())
        self.assertEqual(self.store.set_calls, [])
        self.assertEqual(len(self.listener.of("bulk_error")), 1)
        self.assertEqual(self.listener.of("executed_chunk"), [])
        self.assertEqual(engine.status.failed_chunks, 1)

        del client.hard_errors["id_2"]
        chunk = await engine.exec_chunk()

        self.assertEqual(chunk.outcome, BulkOutcome.ALL_ACCEPTED)
        self.assertEqual([item.id for item in chunk.items], ["id_1", "id_2", "id_3"])
        self.assertEqual(engine.cursor, TimestampCursor(timestamp=BASE_TS + 3, id=3))

    async def test_ignorable_failures_advance(self):
        """测试只有可忽略失败时游标照常推进"""
        engine = self._engine(
            [(1, BASE_TS, None, None)], client=FakeSearchClient(index_exists=False)
        )

        chunk = await engine.exec_chunk()

        self.assertEqual(chunk.outcome, BulkOutcome.PARTIALLY_IGNORABLE)
        self.assertEqual(len(self.listener.of("bulk_error_ignored")), 1)
        self.assertEqual(len(self.listener.of("executed_chunk")), 1)
        self.assertEqual(self.store.data["agent"], {"timestamp": BASE_TS, "id": 1})

    async def test_redelivery_after_update_is_idempotent(self):
        """测试更新后的行重新投递并覆盖旧版本"""
        engine = self._engine([(1, BASE_TS, None, None), (2, BASE_TS + 1, None, None)])
        await engine.exec_chunk()

        self.conn.execute(
            "UPDATE posts SET title = 'edited', updateAt = ? WHERE id = 1", (BASE_TS + 5,)
        )
        self.conn.commit()
        chunk = await engine.exec_chunk()

        self.assertEqual([item.id for item in chunk.items], ["id_1"])
        self.assertEqual(self.client.documents["id_1"]["title"], "edited")
        self.assertEqual(self.client.versions["id_1"], to_version(BASE_TS + 5))

    async def test_soft_delete_removes_document(self):
        """测试软删除的行从索引中删除"""
        engine = self._engine([(1, BASE_TS, None, None), (2, BASE_TS + 1, None, None)])
        await engine.exec_chunk()

        self.conn.execute("UPDATE posts SET deleteAt = ? WHERE id = 2", (BASE_TS + 9,))
        self.conn.commit()
        chunk = await engine.exec_chunk()

        self.assertEqual([item.type for item in chunk.items], ["delete"])
        self.assertNotIn("id_2", self.client.documents)
        self.assertIn("id_1", self.client.documents)

    async def test_invalid_stored_cursor(self):
        """测试损坏的游标内容"""
        engine = self._engine(
            [(1, BASE_TS, None, None)], store=MemoryCursorStore({"agent": {"id": "x"}})
        )
        with self.assertRaises(CursorStoreError):
            await engine.exec_chunk()
        self.assertIsNone(engine.cursor)

    async def test_listener_errors_are_isolated(self):
        """测试监听器异常不影响同步"""
        engine = self._engine([(1, BASE_TS, None, None)])
        broken = RecordingListener()
        broken.on_executed_chunk = lambda chunk: 1 / 0
        engine.add_listener(broken)

        chunk = await engine.exec_chunk()

        self.assertIsNotNone(chunk)
        self.assertEqual(len(self.listener.of("executed_chunk")), 1)
        self.assertEqual(engine.cursor, TimestampCursor(timestamp=BASE_TS, id=1))
        self.assertEqual(len(self.store.set_calls), 1)

    async def test_run_survives_failing_error_listener(self):
        """测试错误回调本身抛出异常时循环继续"""
        engine = self._engine([(pk, BASE_TS + pk, None, None) for pk in range(1, 4)])
        original = self.reader.get_latest
        calls = {"n": 0}

        async def flaky_latest():
            calls["n"] += 1
            if calls["n"] == 1:
                raise ConnectionError("source down")
            return await original()

        self.reader.get_latest = flaky_latest

        def fail(*args):
            raise RuntimeError("listener down")

        broken = RecordingListener()
        broken.on_executed_chunk = fail
        broken.on_uncaught_error = fail
        engine.add_listener(broken)

        task = asyncio.create_task(engine.run())
        for _ in range(200):
            if self.listener.of("skipped_chunk"):
                break
            await asyncio.sleep(0.01)

        self.assertFalse(task.done())
        self.assertTrue(engine.is_running())

        engine.stop()
        await asyncio.wait_for(task, timeout=2)

        self.assertEqual(len(self.listener.of("uncaught_error")), 1)
        self.assertEqual(len(self.listener.of("executed_chunk")), 1)
        self.assertEqual(len(self.client.documents), 3)
        self.assertEqual(engine.cursor, TimestampCursor(timestamp=BASE_TS + 3, id=3))

    async def test_run_continues_after_uncaught_error_and_stops(self):
        """测试循环捕获异常后继续，stop() 结束循环"""
        engine = self._engine([(pk, BASE_TS + pk, None, None) for pk in range(1, 4)])
        original = self.reader.get_latest
        calls = {"n": 0}

        async def flaky_latest():
            calls["n"] += 1
            if calls["n"] == 1:
                raise ConnectionError("source down")
            return await original()

        self.reader.get_latest = flaky_latest

        task = asyncio.create_task(engine.run())
        for _ in range(200):
            if self.listener.of("executed_chunk") and self.listener.of("skipped_chunk"):
                break
            await asyncio.sleep(0.01)
        self.assertTrue(engine.is_running())
        self.assertEqual(engine.status.state, SyncState.RUNNING)

        engine.stop()
        await asyncio.wait_for(task, timeout=2)

        errors = self.listener.of("uncaught_error")
        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0][0], ConnectionError)
        self.assertEqual(errors[0][1], TimestampCursor())
        self.assertEqual(len(self.client.documents), 3)
        self.assertFalse(engine.is_running())
        self.assertEqual(engine.status.state, SyncState.STOPPED)
        self.assertIn("source down", engine.status.last_error)

    async def test_run_retries_cursor_load(self):
        """测试游标加载失败时以空游标上报并重试"""
        store = MemoryCursorStore()
        store.get = AsyncMock(side_effect=[ConnectionError("store down"), None])
        engine = self._engine([(1, BASE_TS, None, None)], store=store)

        task = asyncio.create_task(engine.run())
        for _ in range(200):
            if self.listener.of("executed_chunk"):
                break
            await asyncio.sleep(0.01)
        engine.stop()
        await asyncio.wait_for(task, timeout=2)

        self.assertEqual(self.listener.of("uncaught_error")[0][1], None)
        self.assertEqual(self.listener.of("startup"), [TimestampCursor()])
        self.assertEqual(len(self.listener.of("executed_chunk")), 1)

    async def test_stop_interrupts_delay(self):
        """测试 stop() 立即结束分块间隔等待"""
        engine = self._engine([])
        engine.chunk_delay_ms = 60_000

        task = asyncio.create_task(engine.run())
        for _ in range(200):
            if self.listener.of("skipped_chunk"):
                break
            await asyncio.sleep(0.01)
        engine.stop()

        await asyncio.wait_for(task, timeout=2)
        self.assertEqual(engine.status.skipped_chunks, 1)

    async def test_run_twice_rejected(self):
        """测试重复启动"""
        engine = self._engine([])
        task = asyncio.create_task(engine.run())
        await asyncio.sleep(0.01)

        with self.assertRaises(RuntimeError):
            await engine.run()

        engine.stop()
        await asyncio.wait_for(task, timeout=2)

    def test_negative_delay_rejected(self):
        """测试非法分块间隔"""
        _, table = create_memory_source()
        with self.assertRaises(ValueError):
            SyncEngine("agent", KeyReader(table, "posts"), None, None, chunk_delay_ms=-1)
        table._conn.close()


if __name__ == "__main__":
    unittest.main()
