"""Tests for ufree.adapters.factory — port wiring."""

from ufree.adapters.composite_availability import CompositeAvailabilityAdapter
from ufree.adapters.factory import create_ports
from ufree.adapters.firestore_friends import FirestoreFriendAdapter
from ufree.adapters.firestore_notifications import FirestoreNotificationAdapter
from ufree.core.update_status import UpdateMyStatus
from ufree.integrations.firestore import FirestoreClient


class TestCreatePorts:
    def test_wires_all_ports(self, tmp_db_path):
        ports = create_ports("uid-1", client=FirestoreClient("p"), db_path=tmp_db_path)

        assert isinstance(ports.availability, CompositeAvailabilityAdapter)
        assert isinstance(ports.update_status, UpdateMyStatus)
        assert isinstance(ports.friends, FirestoreFriendAdapter)
        assert isinstance(ports.notifications, FirestoreNotificationAdapter)

    def test_as_dict_keys(self, tmp_db_path):
        ports = create_ports("uid-1", client=FirestoreClient("p"), db_path=tmp_db_path)
        assert set(ports.as_dict()) == {"availability", "update_status", "friends", "notifications"}
