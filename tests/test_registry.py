import unittest
from unittest.mock import Mock

from print_bridge.server.registry import ConnectionRegistry, normalize_ip


class TestNormalizeIp(unittest.TestCase):

    def test_normalize(self):
        self.assertEqual(normalize_ip('::ffff:192.168.1.20'), '192.168.1.20')
        self.assertEqual(normalize_ip('::1'), '127.0.0.1')
        self.assertEqual(normalize_ip('10.0.0.5'), '10.0.0.5')
        self.assertEqual(normalize_ip('fe80::1'), 'fe80::1')
        self.assertEqual(normalize_ip(''), 'unknown')
        self.assertEqual(normalize_ip(None), 'unknown')


class TestConnectionRegistry(unittest.TestCase):

    def setUp(self):
        self.observer = Mock()
        self.registry = ConnectionRegistry(observer=self.observer)

    def test_register_and_count(self):
        a = self.registry.register(object(), '::ffff:10.0.0.1')
        b = self.registry.register(object(), '::1')
        self.assertEqual(self.registry.count(), 2)
        self.assertEqual(a.ip, '10.0.0.1')
        self.assertEqual(b.ip, '127.0.0.1')
        self.assertIs(self.registry.get(a.id), a)
        self.assertEqual({c.id for c in self.registry.all()}, {a.id, b.id})

    def test_unregister_is_idempotent(self):
        conn = self.registry.register(object(), '10.0.0.1')
        other = self.registry.register(object(), '10.0.0.2')

        self.assertTrue(self.registry.unregister(conn))
        self.assertFalse(self.registry.unregister(conn))
        self.assertEqual(self.registry.count(), 1)
        self.assertIs(self.registry.all()[0], other)

        kinds = [c.args[0] for c in self.observer.notify_client_event.call_args_list]
        self.assertEqual(kinds, ['connect', 'connect', 'disconnect'])

    def test_observer_payload(self):
        self.registry.register(object(), '::ffff:10.0.0.9')
        kind, info = self.observer.notify_client_event.call_args.args
        self.assertEqual(kind, 'connect')
        self.assertEqual(info['ip'], '10.0.0.9')
        self.assertIn('time', info)

    def test_observer_errors_are_contained(self):
        self.observer.notify_client_event.side_effect = RuntimeError('window gone')
        conn = self.registry.register(object(), '10.0.0.1')
        self.assertTrue(self.registry.unregister(conn))
        self.assertEqual(self.registry.count(), 0)

    def test_clear(self):
        for i in range(3):
            self.registry.register(object(), f'10.0.0.{i}')
        self.registry.clear()
        self.assertEqual(self.registry.count(), 0)


if __name__ == '__main__':
    unittest.main()
