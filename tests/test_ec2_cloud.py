"""Tests for the EC2 backend - cloud/ec2.py and uplink/ec2.py. boto3 is mocked."""

import sys
from concurrent.futures import Future
from pathlib import Path
from unittest.mock import MagicMock, patch

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import pytest
from cloud.ec2 import CASTLE_TAG, Ec2Cloud, Ec2CloudError, Ec2InstanceInfo, Ec2Settings
from roles.aws_node import AwsNodeRole
from uplink.ec2 import Ec2Uplink

SETTINGS = Ec2Settings(key_pair='castle', security_group='castle-sg', region='us-west-2')


def instance(instance_id, private_dns='', public_dns='', state='running'):
    return {'InstanceId': instance_id, 'PrivateDnsName': private_dns,
            'PublicDnsName': public_dns, 'State': {'Name': state}}


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def ec2(client):
    with patch('cloud.ec2.CALL_DELAY_MS', 0):
        cloud = Ec2Cloud(SETTINGS, client=client)
        yield cloud
        cloud.close()


class TestEc2Cloud:
    """Test request batching against a mocked EC2 client."""

    def test_creates_coalesced(self, ec2, client):
        client.run_instances.return_value = {'Instances': [instance('i-1'), instance('i-2')]}
        with ec2._cond:
            first = ec2.create_instance('m5.large', 'ami-1')
            second = ec2.create_instance('m5.large', 'ami-1')
        assert {first.result(5), second.result(5)} == {'i-1', 'i-2'}
        client.run_instances.assert_called_once()
        kwargs = client.run_instances.call_args.kwargs
        assert kwargs['MinCount'] == kwargs['MaxCount'] == 2
        assert kwargs['KeyName'] == 'castle'
        assert kwargs['TagSpecifications'][0]['Tags'] == [CASTLE_TAG]

    def test_creates_split_by_image(self, ec2, client):
        client.run_instances.side_effect = [{'Instances': [instance('i-1')]},
                                            {'Instances': [instance('i-2')]}]
        with ec2._cond:
            first = ec2.create_instance('m5.large', 'ami-1')
            second = ec2.create_instance('m5.large', 'ami-2')
        assert first.result(5) == 'i-1'
        assert second.result(5) == 'i-2'
        assert client.run_instances.call_count == 2

    def test_create_requires_key_pair(self, client):
        cloud = Ec2Cloud(Ec2Settings(security_group='sg'), client=client)
        try:
            with pytest.raises(Ec2CloudError, match='keyPair'):
                cloud.create_instance('m5.large', 'ami-1').result(5)
        finally:
            cloud.close()

    def test_create_api_error(self, ec2, client):
        client.run_instances.side_effect = RuntimeError('quota exceeded')
        with pytest.raises(RuntimeError, match='quota'):
            ec2.create_instance('m5.large', 'ami-1').result(5)

    def test_describe_by_id(self, ec2, client):
        client.describe_instances.return_value = {'Reservations': [{'Instances': [
            instance('i-1', 'ip-10-0-0-1', 'ec2-1.example.com')]}]}
        with ec2._cond:
            found = ec2.describe_instance('i-1')
            missing = ec2.describe_instance('i-9')
        assert found.result(5) == Ec2InstanceInfo('i-1', 'ip-10-0-0-1', 'ec2-1.example.com',
                                                  'running')
        with pytest.raises(Ec2CloudError, match='did not include'):
            missing.result(5)
        assert client.describe_instances.call_args.kwargs['InstanceIds'] == ['i-1', 'i-9']

    def test_describe_all_filters(self, ec2, client):
        client.describe_instances.return_value = {'Reservations': [
            {'Instances': [instance('i-1')]}, {'Instances': [instance('i-2')]}]}
        infos = ec2.describe_all_instances().result(5)
        assert [i.instance_id for i in infos] == ['i-1', 'i-2']
        filters = client.describe_instances.call_args.kwargs['Filters']
        assert {'Name': 'key-name', 'Values': ['castle']} in filters
        assert {'Name': 'tag:CastleNodeVersion', 'Values': ['1']} in filters

    def test_terminates_batched(self, ec2, client):
        with ec2._cond:
            futures = [ec2.terminate_instance('i-2'), ec2.terminate_instance('i-1')]
        for future in futures:
            future.result(5)
        client.terminate_instances.assert_called_once_with(InstanceIds=['i-1', 'i-2'])

    def test_destroy_all_runs_once(self, ec2, client, fake_cluster):
        node = fake_cluster({'node0': {}}).nodes['node0']
        client.describe_instances.return_value = {'Reservations': [{'Instances': [
            instance('i-1'), instance('i-2')]}]}
        ec2.destroy_all(node)
        ec2.destroy_all(node)
        client.terminate_instances.assert_called_once_with(InstanceIds=['i-1', 'i-2'])

    def test_closed_cloud_fails_requests(self, client):
        cloud = Ec2Cloud(SETTINGS, client=client)
        cloud.close()
        with pytest.raises(Ec2CloudError, match='shutting down'):
            cloud.describe_instance('i-1').result(5)
        client.close.assert_called_once_with()

    def test_settings_string(self):
        assert str(SETTINGS) == ('Ec2Settings(keyPair=castle, securityGroup=castle-sg, '
                                 'region=us-west-2)')


def done(value):
    future = Future()
    future.set_result(value)
    return future


class TestEc2Uplink:
    """Test the EC2 uplink over a mocked cloud."""

    @pytest.fixture
    def node(self, fake_cluster):
        cluster = fake_cluster({'node0': {}})
        return cluster, cluster.nodes['node0']

    def test_startup_waits_for_dns_and_ssh(self, node):
        cluster, node = node
        cloud = MagicMock()
        cloud.create_instance.return_value = done('i-1')
        cloud.describe_instance.side_effect = [
            done(Ec2InstanceInfo('i-1')),
            done(Ec2InstanceInfo('i-1', 'ip-10-0-0-1', 'ec2-1.example.com')),
        ]
        role = AwsNodeRole(instance_type='m5.large', image_id='ami-1', ssh_user='ubuntu')
        uplink = Ec2Uplink(role, cluster, node, cloud)
        ssh_results = [(255, '', 'Connection refused'), (0, '', '')]
        with patch('uplink.ec2.DNS_POLL_DELAY_MS', 1), patch('uplink.ec2.SSH_POLL_DELAY_MS', 1), \
                patch('command.shell.run_command', side_effect=ssh_results):
            uplink.startup()
        assert role.instance_id == 'i-1'
        assert role.private_dns == 'ip-10-0-0-1'
        assert uplink.internal_dns() == 'ip-10-0-0-1'
        assert uplink.can_login()
        assert uplink.command().args('ls').command_line()[-2:] == ['ec2-1.example.com', 'ls']

    def test_shutdown_terminates(self, node):
        cluster, node = node
        cloud = MagicMock()
        cloud.terminate_instance.return_value = done(None)
        uplink = Ec2Uplink(AwsNodeRole(instance_id='i-7'), cluster, node, cloud)
        uplink.shutdown().result()
        cloud.terminate_instance.assert_called_once_with('i-7')

    def test_shutdown_all_uses_cloud(self, node):
        cluster, node = node
        cloud = MagicMock()
        Ec2Uplink(AwsNodeRole(), cluster, node, cloud).shutdown_all()
        cloud.destroy_all.assert_called_once_with(node)
