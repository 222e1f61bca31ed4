"""
In-memory LDAP directory for tests, backed by ldap3's MOCK_SYNC strategy.
"""

from ldap3 import Server, Connection, MOCK_SYNC

from ldap_provision.directory import USER_OBJECT_CLASSES, user_dn

BASE_PATH = 'o=test'
ADMIN_DN = 'cn=admin,o=test'
ADMIN_PASSWORD = 'admin_password'

HEADER = 'id,full_name,phone_number,email,department,job_description'


class InMemorySession:
    """Stand-in for DirectorySession holding a bound mock connection."""

    def __init__(self):
        server = Server('fake_ldap_server')
        self.connection = Connection(server, user=ADMIN_DN, password=ADMIN_PASSWORD,
                                     client_strategy=MOCK_SYNC)
        self.connection.strategy.add_entry(BASE_PATH, {'objectClass': ['organization'], 'o': 'test'})
        self.connection.strategy.add_entry(ADMIN_DN, {
            'objectClass': ['person'],
            'cn': 'admin',
            'sn': 'admin',
            'userPassword': ADMIN_PASSWORD
        })
        self.connection.strategy.add_entry('ou=users,' + BASE_PATH, {
            'objectClass': ['organizationalUnit'],
            'ou': 'users'
        })
        self.connection.bind()
        self.disconnected = False

    def add_user(self, user_id, given_name='Test', surname='User'):
        self.connection.strategy.add_entry(user_dn(user_id, BASE_PATH), {
            'objectClass': list(USER_OBJECT_CLASSES),
            'cn': user_id,
            'givenName': given_name,
            'sn': surname,
            'mail': f'{user_id}@example.com'
        })

    def connect(self):
        # Already bound in __init__
        self.disconnected = False

    def disconnect(self):
        self.disconnected = True
