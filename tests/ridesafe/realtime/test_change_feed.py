from sqlalchemy import select

from ridesafe.models.admin_code import AdminCode
from ridesafe.models.sync_event import SyncEvent
from ridesafe.realtime.change_feed import DocumentChange, diff_documents

ALL_CODES = select(AdminCode).order_by(AdminCode.code)


def _changes(snapshot) -> list[tuple[str, str]]:
    return [(change.change_type, change.doc_id) for change in snapshot.changes]


def test_diff_documents_reports_added_modified_and_removed() -> None:
    previous = {'a': {'v': 1}, 'b': {'v': 2}}
    current = {'a': {'v': 1}, 'b': {'v': 3}, 'c': {'v': 4}}

    assert diff_documents(previous, current) == [
        DocumentChange('modified', 'b', {'v': 3}),
        DocumentChange('added', 'c', {'v': 4}),
    ]
    assert diff_documents(current, {}) == [
        DocumentChange('removed', 'a', {'v': 1}),
        DocumentChange('removed', 'b', {'v': 3}),
        DocumentChange('removed', 'c', {'v': 4}),
    ]


def test_listen_sends_initial_snapshot(db, change_feed) -> None:
    db.add(AdminCode(code='A1', is_active=True))
    db.commit()
    snapshots = []

    change_feed.listen(AdminCode, ALL_CODES, snapshots.append)

    assert len(snapshots) == 1
    assert [doc['code'] for doc in snapshots[0].docs] == ['A1']
    assert _changes(snapshots[0]) == [('added', 'A1')]


def test_listen_on_empty_table_sends_empty_snapshot(change_feed) -> None:
    snapshots = []

    change_feed.listen(AdminCode, ALL_CODES, snapshots.append)

    assert len(snapshots) == 1
    assert snapshots[0].empty
    assert snapshots[0].changes == []


def test_commits_publish_added_modified_and_removed(db, change_feed) -> None:
    snapshots = []
    change_feed.listen(AdminCode, ALL_CODES, snapshots.append)

    admin_code = AdminCode(code='A1', is_active=True)
    db.add(admin_code)
    db.commit()
    admin_code.is_active = False
    db.commit()
    db.delete(admin_code)
    db.commit()

    assert [_changes(snapshot) for snapshot in snapshots[1:]] == [
        [('added', 'A1')],
        [('modified', 'A1')],
        [('removed', 'A1')],
    ]
    assert snapshots[2].docs[0]['is_active'] is False
    assert snapshots[3].empty


def test_rolled_back_work_is_not_published(db, change_feed) -> None:
    snapshots = []
    change_feed.listen(AdminCode, ALL_CODES, snapshots.append)

    db.add(AdminCode(code='A1', is_active=True))
    db.flush()
    db.rollback()
    db.add(SyncEvent(type='user_data_updated', user_id='u', user_email='e', data={}))
    db.commit()

    assert len(snapshots) == 1


def test_commit_without_result_change_is_silent(db, change_feed) -> None:
    db.add(AdminCode(code='A1', is_active=True))
    db.commit()
    snapshots = []
    change_feed.listen(AdminCode, select(AdminCode).where(AdminCode.code == 'A1'), snapshots.append)

    db.add(AdminCode(code='B2', is_active=True))
    db.commit()

    assert len(snapshots) == 1


def test_unsubscribe_stops_delivery(db, change_feed) -> None:
    snapshots = []
    unsubscribe = change_feed.listen(AdminCode, ALL_CODES, snapshots.append)

    unsubscribe()
    db.add(AdminCode(code='A1', is_active=True))
    db.commit()

    assert len(snapshots) == 1
    assert change_feed.listener_count == 0


def test_failing_callback_does_not_break_writer_or_other_listeners(db, change_feed) -> None:
    def explode(snapshot):
        if not snapshot.empty:
            raise RuntimeError('listener bug')

    snapshots = []
    change_feed.listen(AdminCode, ALL_CODES, explode)
    change_feed.listen(AdminCode, ALL_CODES, snapshots.append)

    db.add(AdminCode(code='A1', is_active=True))
    db.commit()

    assert _changes(snapshots[-1]) == [('added', 'A1')]
    assert db.get(AdminCode, 'A1') is not None


def test_close_detaches_from_sessions(db, change_feed) -> None:
    snapshots = []
    change_feed.listen(AdminCode, ALL_CODES, snapshots.append)

    change_feed.close()
    db.add(AdminCode(code='A1', is_active=True))
    db.commit()

    assert len(snapshots) == 1
    assert change_feed.listener_count == 0
